"""
Pytest fixtures for chirashi tests.

Nothing here touches the network, a browser, or the real Gemini API.
"""
from io import BytesIO

import pytest
from PIL import Image

from chirashi.config import PipelineLimits
from chirashi.models import DownloadedImage, NormalizedImage, SiteFamily, StoreTarget


def make_jpeg(width: int, height: int, color=(200, 40, 40)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG", quality=90)
    return buf.getvalue()


class SleepRecorder:
    """Drop-in for asyncio.sleep that records waits instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def limits():
    return PipelineLimits()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def flyer_download():
    """A decodable image reported as 60KB so it passes admission."""
    data = make_jpeg(800, 1100)
    return DownloadedImage(data=data, content_type="image/jpeg", size_bytes=60 * 1024)


@pytest.fixture
def normalized_image():
    return NormalizedImage(data=b"\xff\xd8fake", mime_type="image/jpeg", width=800, height=1100)


@pytest.fixture
def flyer_store():
    return StoreTarget(
        name="テスト店",
        url="https://chirashi.example.com/stores/abc",
        family=SiteFamily.FLYER_HOSTING,
    )


@pytest.fixture
def aggregator_store():
    return StoreTarget(
        name="アグリ店",
        url="https://tokubai.example.jp/store/123",
        family=SiteFamily.LISTING_AGGREGATOR,
    )


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from chirashi.main import app
    return TestClient(app)
