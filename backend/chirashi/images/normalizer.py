"""
Downscale oversized flyer images before they are sent to Gemini.
"""

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from chirashi.config import PipelineLimits
from chirashi.errors import ImageNormalizeError
from chirashi.models import NormalizedImage

OUTPUT_MIME_TYPE = "image/jpeg"


def normalize_image(data: bytes, limits: PipelineLimits) -> NormalizedImage:
    """
    Fit the image within limits.max_image_width, keeping aspect ratio.

    Wider images are resized and re-encoded as JPEG; narrower ones pass
    through untouched (never upscaled) but are still tagged image/jpeg.
    """
    try:
        with Image.open(BytesIO(data)) as im:
            width, height = im.size
            if width <= limits.max_image_width:
                return NormalizedImage(data=data, mime_type=OUTPUT_MIME_TYPE,
                                       width=width, height=height)

            new_width = limits.max_image_width
            new_height = max(1, round(height * new_width / width))
            resized = im.convert("RGB").resize((new_width, new_height), Image.Resampling.LANCZOS)

            out = BytesIO()
            resized.save(out, format="JPEG", quality=limits.jpeg_quality)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageNormalizeError(f"Cannot decode image: {e}") from e

    return NormalizedImage(data=out.getvalue(), mime_type=OUTPUT_MIME_TYPE,
                           width=new_width, height=new_height, resized=True)
