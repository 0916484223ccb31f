"""
Tests for the flyer locator strategies and per-store failure handling.
Pages are faked; no browser is launched.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeout

from chirashi.models import SiteFamily, StoreTarget
from chirashi.scraping import flyer_locator
from chirashi.scraping.flyer_locator import (
    FlyerLocator,
    StoreImages,
    collect_images,
    locate_flyer_hosting,
    locate_listing_aggregator,
)


def raw_img(src=None, nw=0, nh=0, dw=0, dh=0, data_src=None):
    return {"src": src, "dataSrc": data_src, "naturalWidth": nw, "naturalHeight": nh,
            "displayWidth": dw, "displayHeight": dh}


class FakeLink:
    def __init__(self, href):
        self.href = href

    async def get_attribute(self, name):
        return self.href if name == "href" else None


class FakePage:
    """Minimal async Page: maps URL -> (images, detail link href)."""

    def __init__(self, pages, fail_urls=()):
        self.pages = pages
        self.fail_urls = set(fail_urls)
        self.url = "about:blank"
        self.visited = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if url in self.fail_urls:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded")
        self.url = url

    async def wait_for_timeout(self, ms):
        return None

    async def query_selector(self, selector):
        href = self.pages.get(self.url, {}).get("link")
        return FakeLink(href) if href else None

    async def eval_on_selector_all(self, selector, script):
        return self.pages.get(self.url, {}).get("images", [])


STORE_URL = "https://chirashi.example.com/stores/abc"
DETAIL_URL = "https://chirashi.example.com/flyers/f1"


# ── Unit Tests: collect_images ──────────────────────────────────────────

class TestCollectImages:

    def test_resolves_relative_and_skips_missing_src(self):
        page = FakePage({STORE_URL: {"images": [
            raw_img("/flyer/1.jpg", 1000, 1400),
            raw_img(None, 900, 900),
        ]}})
        page.url = STORE_URL
        images = asyncio.run(collect_images(page))
        assert [i.url for i in images] == ["https://chirashi.example.com/flyer/1.jpg"]
        assert images[0].natural_width == 1000
        assert images[0].context == STORE_URL

    def test_lazy_src_only_when_requested(self):
        page = FakePage({STORE_URL: {"images": [raw_img(None, 900, 900, data_src="/lazy/1.jpg")]}})
        page.url = STORE_URL
        assert asyncio.run(collect_images(page)) == []
        images = asyncio.run(collect_images(page, use_lazy_src=True))
        assert images[0].url == "https://chirashi.example.com/lazy/1.jpg"


# ── Unit Tests: flyer-hosting strategy ──────────────────────────────────

class TestFlyerHosting:

    def test_follows_detail_link(self, flyer_store, limits):
        page = FakePage({
            STORE_URL: {"link": "/flyers/f1", "images": []},
            DETAIL_URL: {"images": [
                raw_img("https://cdn.example.com/flyer/p1.jpg", 1200, 1700),
                raw_img("https://cdn.example.com/flyer/p2.jpg", 1200, 1700),
                raw_img("https://cdn.example.com/flyer/p1.jpg", 1200, 1700),
                raw_img("https://cdn.example.com/flyer/logo.png", 800, 800),
                raw_img("https://cdn.example.com/flyer/tiny.jpg", 100, 80),
            ]},
        })
        urls = asyncio.run(locate_flyer_hosting(page, flyer_store, limits))
        assert urls == [
            "https://cdn.example.com/flyer/p1.jpg",
            "https://cdn.example.com/flyer/p2.jpg",
        ]
        assert page.visited == [STORE_URL, DETAIL_URL]

    def test_falls_back_when_detail_has_nothing(self, flyer_store, limits):
        page = FakePage({
            STORE_URL: {"link": "/flyers/f1", "images": [
                raw_img("https://cdn.example.com/static/big.jpg", 900, 1200),
                raw_img("https://cdn.example.com/static/shape.svg.png", 900, 1200),
            ]},
            DETAIL_URL: {"images": [raw_img("https://cdn.example.com/x/other.jpg", 900, 1200)]},
        })
        urls = asyncio.run(locate_flyer_hosting(page, flyer_store, limits))
        assert urls == ["https://cdn.example.com/static/big.jpg"]
        assert page.visited[-1] == STORE_URL

    def test_falls_back_when_detail_navigation_fails(self, flyer_store, limits):
        page = FakePage({
            STORE_URL: {"link": DETAIL_URL, "images": [
                raw_img("https://cdn.example.com/a/page.webp", 1000, 1300),
            ]},
        }, fail_urls=[DETAIL_URL])
        urls = asyncio.run(locate_flyer_hosting(page, flyer_store, limits))
        assert urls == ["https://cdn.example.com/a/page.webp"]

    def test_no_detail_link(self, flyer_store, limits):
        page = FakePage({STORE_URL: {"images": [raw_img("/img/a.jpg", 600, 900)]}})
        urls = asyncio.run(locate_flyer_hosting(page, flyer_store, limits))
        assert urls == ["https://chirashi.example.com/img/a.jpg"]


# ── Unit Tests: listing-aggregator strategy ─────────────────────────────

class TestListingAggregator:

    def test_filters_and_dedupes(self, aggregator_store, limits):
        page = FakePage({aggregator_store.url: {"images": [
            raw_img("/leaflets/1.jpg", 1000, 1400),
            raw_img(None, 1000, 1400, data_src="/leaflets/2.jpg"),
            raw_img("/leaflets/1.jpg", 1000, 1400),
            raw_img("/banner/top.jpg", 1000, 1400),
            raw_img("/leaflets/wide.jpg", 2400, 400),
            raw_img("/leaflets/small.jpg", 200, 300, 200, 300),
        ]}})
        urls = asyncio.run(locate_listing_aggregator(page, aggregator_store, limits))
        assert urls == [
            "https://tokubai.example.jp/leaflets/1.jpg",
            "https://tokubai.example.jp/leaflets/2.jpg",
        ]
        assert page.visited == [aggregator_store.url]


# ── Unit Tests: FlyerLocator ────────────────────────────────────────────

class TestFlyerLocator:

    def _locator(self, limits, sleep):
        locator = FlyerLocator(limits, sleep=sleep)
        locator.start = AsyncMock()
        locator.page = object()
        return locator

    def test_store_failure_yields_empty_list(self, flyer_store, limits, sleep):
        locator = self._locator(limits, sleep)
        failing = AsyncMock(side_effect=RuntimeError("DOM detached"))
        with patch.dict(flyer_locator.STRATEGIES, {SiteFamily.FLYER_HOSTING: failing}):
            result = asyncio.run(locator.locate(flyer_store))
        assert result.image_urls == []
        assert "DOM detached" in result.error

    def test_timeout_yields_empty_list(self, flyer_store, limits, sleep):
        locator = self._locator(limits, sleep)
        failing = AsyncMock(side_effect=PlaywrightTimeout("Timeout 60000ms exceeded"))
        with patch.dict(flyer_locator.STRATEGIES, {SiteFamily.FLYER_HOSTING: failing}):
            result = asyncio.run(locator.locate(flyer_store))
        assert result == StoreImages(store=flyer_store, error="Timeout loading page")

    def test_dispatches_by_family(self, flyer_store, aggregator_store, limits, sleep):
        locator = self._locator(limits, sleep)
        hosting = AsyncMock(return_value=["https://a/flyer/1.jpg"])
        aggregator = AsyncMock(return_value=["https://b/leaflet/1.jpg"])
        with patch.dict(flyer_locator.STRATEGIES, {
            SiteFamily.FLYER_HOSTING: hosting,
            SiteFamily.LISTING_AGGREGATOR: aggregator,
        }):
            results = asyncio.run(locator.locate_all([flyer_store, aggregator_store]))
        assert [r.image_urls for r in results] == [["https://a/flyer/1.jpg"], ["https://b/leaflet/1.jpg"]]
        hosting.assert_awaited_once()
        aggregator.assert_awaited_once()

    def test_continues_after_failed_store_and_pauses_between(self, limits, sleep):
        locator = self._locator(limits, sleep)
        stores = [
            StoreTarget(name=f"店{i}", url=f"https://x.example.com/{i}", family=SiteFamily.FLYER_HOSTING)
            for i in range(3)
        ]
        strategy = AsyncMock(side_effect=[["https://x/flyer/0.jpg"], RuntimeError("boom"), ["https://x/flyer/2.jpg"]])
        with patch.dict(flyer_locator.STRATEGIES, {SiteFamily.FLYER_HOSTING: strategy}):
            results = asyncio.run(locator.locate_all(stores))
        assert [len(r.image_urls) for r in results] == [1, 0, 1]
        assert sleep.calls == [limits.inter_store_pause] * 2
