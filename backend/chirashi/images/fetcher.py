"""
Flyer image download over HTTP(S) plus the size-based admission check.
"""

from typing import Optional

import httpx

from chirashi.config import BROWSER_USER_AGENT, PipelineLimits
from chirashi.errors import ImageFetchError
from chirashi.logging_config import get_logger
from chirashi.models import DownloadedImage

logger = get_logger("fetcher")

DEFAULT_CONTENT_TYPE = "image/jpeg"


def _mime_type(content_type: Optional[str]) -> str:
    if not content_type:
        return DEFAULT_CONTENT_TYPE
    return content_type.split(";")[0].strip() or DEFAULT_CONTENT_TYPE


class ImageFetcher:
    """
    Downloads image bytes with a shared AsyncClient.

    Redirects are followed up to limits.max_redirects hops; anything other
    than a terminal 200 raises ImageFetchError.
    """

    def __init__(self, limits: PipelineLimits,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.limits = limits
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=limits.max_redirects,
            timeout=limits.request_timeout,
            headers={"User-Agent": BROWSER_USER_AGENT},
            transport=transport,
        )

    async def fetch(self, url: str) -> DownloadedImage:
        try:
            resp = await self._client.get(url)
        except httpx.TooManyRedirects as e:
            raise ImageFetchError(f"Too many redirects for {url}") from e
        except httpx.HTTPError as e:
            raise ImageFetchError(f"Request failed for {url}: {e}") from e

        if resp.status_code != 200:
            raise ImageFetchError(f"HTTP {resp.status_code} for {resp.url}")

        data = resp.content
        return DownloadedImage(
            data=data,
            content_type=_mime_type(resp.headers.get("content-type")),
            size_bytes=len(data),
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "ImageFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


def admit_image(image: DownloadedImage, limits: PipelineLimits) -> bool:
    """Images under the byte floor are icons or thumbnails, not flyer pages."""
    return image.size_bytes >= limits.min_image_bytes
