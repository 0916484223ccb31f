"""
Image acceptance rules for the two listing-site families.

Pure functions over CandidateImage so they can be exercised without a
browser. Thresholds come from PipelineLimits.
"""

from urllib.parse import urljoin, urlparse

from chirashi.config import PipelineLimits
from chirashi.models import CandidateImage

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")

# Flyer-hosting detail pages serve flyer pages from these path segments
FLYER_PATH_MARKERS = ("chirashi", "flyer", "image")

BASIC_EXCLUDE_TERMS = ("logo", "icon", "avatar")

# Listing page fallback also drops inline vector art
FALLBACK_EXCLUDE_TERMS = BASIC_EXCLUDE_TERMS + ("svg",)

AGGREGATOR_EXCLUDE_TERMS = (
    "logo", "icon", "avatar", "svg", "badge", "banner",
    "button", "arrow", "sprite", "emoji", "ad_",
    "advertisement", "campaign", "coupon", "stamp",
    "profile", "user", "thumb_small",
)


def site_origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_url(src: str, origin: str) -> str:
    """Make an image src absolute against the site origin."""
    src = src.strip()
    if src.startswith(("http://", "https://")):
        return src
    return urljoin(origin + "/", src)


def has_image_extension(url: str) -> bool:
    lowered = url.lower()
    return any(ext in lowered for ext in IMAGE_EXTENSIONS)


def contains_any(url: str, terms: tuple[str, ...]) -> bool:
    lowered = url.lower()
    return any(term in lowered for term in terms)


def is_large_natural(image: CandidateImage, limits: PipelineLimits) -> bool:
    floor = limits.min_image_dimension
    return image.natural_width >= floor or image.natural_height >= floor


def is_large_rendered(image: CandidateImage, limits: PipelineLimits) -> bool:
    floor = limits.min_image_dimension
    return image.display_width >= floor or image.display_height >= floor


def aspect_ratio(image: CandidateImage) -> float:
    return image.natural_width / (image.natural_height or 1)


def accept_flyer_page_image(image: CandidateImage, limits: PipelineLimits) -> bool:
    """Strict rule for flyer-hosting detail pages."""
    url = image.url
    return (
        contains_any(url, FLYER_PATH_MARKERS)
        and has_image_extension(url)
        and not contains_any(url, BASIC_EXCLUDE_TERMS)
        and is_large_natural(image, limits)
    )


def accept_listing_fallback_image(image: CandidateImage, limits: PipelineLimits) -> bool:
    """Relaxed rule used when the detail page hop gave nothing."""
    url = image.url
    return (
        has_image_extension(url)
        and not contains_any(url, FALLBACK_EXCLUDE_TERMS)
        and is_large_natural(image, limits)
    )


def accept_aggregator_image(image: CandidateImage, limits: PipelineLimits) -> bool:
    """Listing-aggregator rule: exclusion list, size floor, banner shapes out."""
    if contains_any(image.url, AGGREGATOR_EXCLUDE_TERMS):
        return False
    if not (is_large_natural(image, limits) or is_large_rendered(image, limits)):
        return False
    ratio = aspect_ratio(image)
    if ratio > limits.max_aspect_ratio or ratio < limits.min_aspect_ratio:
        return False
    return True


def dedupe(urls: list[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(urls))
