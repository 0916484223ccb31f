"""
Flyer image locator using Playwright.
Finds full-size flyer page images on supermarket listing sites.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeout,
)

from chirashi.config import BROWSER_USER_AGENT, PipelineLimits
from chirashi.logging_config import get_logger
from chirashi.models import CandidateImage, SiteFamily, StoreTarget
from chirashi.scraping import heuristics

logger = get_logger("locator")

# Reads every <img> in one round trip: both src attributes plus natural and
# rendered geometry.
_IMAGES_JS = """els => els.map(el => {
    const rect = el.getBoundingClientRect();
    return {
        src: el.getAttribute("src"),
        dataSrc: el.getAttribute("data-src"),
        naturalWidth: el.naturalWidth || 0,
        naturalHeight: el.naturalHeight || 0,
        displayWidth: rect.width || 0,
        displayHeight: rect.height || 0,
    };
})"""

FLYER_DETAIL_LINK = 'a[href*="/flyers/"]'


@dataclass
class StoreImages:
    """Locator result for one store."""
    store: StoreTarget
    image_urls: list[str] = field(default_factory=list)
    error: str = ""


async def _open(page: Page, url: str, limits: PipelineLimits) -> None:
    await page.goto(url, wait_until="domcontentloaded", timeout=limits.navigation_timeout_ms)
    # Flyer images are injected after DOMContentLoaded
    await page.wait_for_timeout(limits.settle_wait_ms)


async def collect_images(page: Page, use_lazy_src: bool = False) -> list[CandidateImage]:
    """Snapshot all <img> elements on the current page."""
    raw = await page.eval_on_selector_all("img", _IMAGES_JS)
    origin = heuristics.site_origin(page.url)
    images = []
    for item in raw:
        src = item.get("src") or (item.get("dataSrc") if use_lazy_src else None)
        if not src:
            continue
        images.append(CandidateImage(
            url=heuristics.resolve_url(src, origin),
            natural_width=item.get("naturalWidth") or 0,
            natural_height=item.get("naturalHeight") or 0,
            display_width=item.get("displayWidth") or 0,
            display_height=item.get("displayHeight") or 0,
            context=page.url,
        ))
    return images


async def locate_flyer_hosting(page: Page, store: StoreTarget,
                               limits: PipelineLimits) -> list[str]:
    """
    Flyer-hosting family.

    Hops into the first flyer detail page where the full-resolution pages
    live; falls back to the listing page itself under relaxed rules.
    """
    await _open(page, store.url, limits)
    origin = heuristics.site_origin(store.url)
    urls: list[str] = []

    try:
        link = await page.query_selector(FLYER_DETAIL_LINK)
        href = await link.get_attribute("href") if link else None
        if href:
            await _open(page, heuristics.resolve_url(href, origin), limits)
            candidates = await collect_images(page)
            urls = [c.url for c in candidates if heuristics.accept_flyer_page_image(c, limits)]
    except PlaywrightTimeout:
        logger.warning(f"Timeout opening flyer detail page for {store.name}")
    except Exception as e:
        logger.warning(f"Flyer detail page failed for {store.name}: {e}")

    if not urls:
        logger.info(f"No detail-page images for {store.name}, scanning listing page")
        await _open(page, store.url, limits)
        candidates = await collect_images(page)
        urls = [c.url for c in candidates if heuristics.accept_listing_fallback_image(c, limits)]

    return heuristics.dedupe(urls)


async def locate_listing_aggregator(page: Page, store: StoreTarget,
                                    limits: PipelineLimits) -> list[str]:
    """Listing-aggregator family: single page, lazy-load aware, banner shapes rejected."""
    await _open(page, store.url, limits)
    candidates = await collect_images(page, use_lazy_src=True)
    urls = [c.url for c in candidates if heuristics.accept_aggregator_image(c, limits)]
    return heuristics.dedupe(urls)


LocateStrategy = Callable[[Page, StoreTarget, PipelineLimits], Awaitable[list[str]]]

STRATEGIES: dict[SiteFamily, LocateStrategy] = {
    SiteFamily.FLYER_HOSTING: locate_flyer_hosting,
    SiteFamily.LISTING_AGGREGATOR: locate_listing_aggregator,
}


class FlyerLocator:
    """Reuses a single browser instance across all stores of a run."""

    def __init__(self, limits: PipelineLimits, headless: bool = True,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.limits = limits
        self.headless = headless
        self._sleep = sleep
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def start(self):
        """Start browser once for the run."""
        if self.browser:
            return
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            args=[
                "--no-sandbox",
                "--disable-dev-shm-usage",
                "--disable-gpu",
                "--disable-extensions",
            ]
        )
        self.context = await self.browser.new_context(user_agent=BROWSER_USER_AGENT)
        self.page = await self.context.new_page()
        logger.info("Browser started.")

    async def stop(self):
        """Clean up browser resources."""
        try:
            if self.browser:
                await self.browser.close()
        except Exception as e:
            logger.warning(f"Browser close failed: {e}")
        finally:
            self.browser = None
            self.context = None
            self.page = None
        try:
            if self.playwright:
                await self.playwright.stop()
        except Exception as e:
            logger.warning(f"Playwright stop failed: {e}")
        finally:
            self.playwright = None
        logger.info("Browser stopped.")

    async def __aenter__(self) -> "FlyerLocator":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def locate(self, store: StoreTarget) -> StoreImages:
        """Locate flyer images for one store. Never raises."""
        strategy = STRATEGIES.get(store.family)
        if strategy is None:
            logger.error(f"No locator strategy for site family {store.family!r}")
            return StoreImages(store=store, error=f"unsupported family {store.family}")

        try:
            await self.start()
            urls = await strategy(self.page, store, self.limits)
        except PlaywrightTimeout:
            logger.error(f"Timeout locating images for {store.name}", extra={"store": store.name})
            return StoreImages(store=store, error="Timeout loading page")
        except Exception as e:
            logger.error(f"Error locating images for {store.name}: {e}", extra={"store": store.name})
            return StoreImages(store=store, error=str(e))

        logger.info(f"{store.name}: {len(urls)} flyer images found",
                    extra={"store": store.name, "images_found": len(urls)})
        return StoreImages(store=store, image_urls=urls)

    async def locate_all(self, stores: list[StoreTarget]) -> list[StoreImages]:
        """Locate every store in order, pausing between stores."""
        results = []
        for idx, store in enumerate(stores, 1):
            logger.info(f"[{idx}/{len(stores)}] Locating flyers: {store.name} ({store.family.value})")
            results.append(await self.locate(store))
            if idx < len(stores):
                await self._sleep(self.limits.inter_store_pause)
        return results
