"""
Run orchestration: locate flyers for every store, then extract products
image by image and assemble the daily snapshot.

Everything runs sequentially: the Gemini quota and the listing
sites' tolerance are one shared budget, paced by courtesy sleeps.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from chirashi.analysis.parser import parse_products
from chirashi.config import PipelineLimits
from chirashi.errors import ExtractionError, ImageFetchError, ImageNormalizeError
from chirashi.images.fetcher import admit_image
from chirashi.images.normalizer import normalize_image
from chirashi.logging_config import get_logger
from chirashi.models import (
    DailySnapshot,
    DownloadedImage,
    NormalizedImage,
    ProductRecord,
    StoreSnapshot,
    StoreTarget,
)
from chirashi.scraping.flyer_locator import StoreImages

logger = get_logger("pipeline")


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    LOCATING = "locating"
    FETCHING = "fetching"
    ADMITTING = "admitting"
    NORMALIZING = "normalizing"
    EXTRACTING = "extracting"
    PARSING = "parsing"
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"


class Locator(Protocol):
    async def locate_all(self, stores: list[StoreTarget]) -> list[StoreImages]: ...
    async def stop(self) -> None: ...


class Fetcher(Protocol):
    async def fetch(self, url: str) -> DownloadedImage: ...


class Extractor(Protocol):
    async def extract(self, image: NormalizedImage) -> str: ...


class SnapshotSink(Protocol):
    def write(self, snapshot: DailySnapshot): ...


@dataclass
class StoreStats:
    """Progress counters for one store. Zero products is not an error."""
    store_name: str
    images_found: int = 0
    images_selected: int = 0
    images_fetched: int = 0
    images_extracted: int = 0
    products: int = 0
    skipped: Counter = field(default_factory=Counter)
    locate_error: str = ""

    @property
    def images_skipped(self) -> int:
        return sum(self.skipped.values())


@dataclass
class RunResult:
    snapshot: DailySnapshot
    stats: list[StoreStats]
    started_at: datetime
    finished_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


def select_images(urls: list[str], cap: int, store_name: str = "") -> list[str]:
    """Bound the number of images per store sent to Gemini."""
    if len(urls) > cap:
        logger.info(f"{store_name}: extracting {cap} of {len(urls)} images (cap)",
                    extra={"store": store_name, "images_found": len(urls), "cap": cap})
    return urls[:cap]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlyerPipeline:
    """Locator → fetch → admit → normalize → extract → parse → snapshot."""

    def __init__(self, locator: Locator, fetcher: Fetcher, extractor: Extractor,
                 limits: Optional[PipelineLimits] = None,
                 writer: Optional[SnapshotSink] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 now: Callable[[], datetime] = _utcnow):
        self.locator = locator
        self.fetcher = fetcher
        self.extractor = extractor
        self.limits = limits or PipelineLimits()
        self.writer = writer
        self._sleep = sleep
        self._now = now
        self.state = RunState.NOT_STARTED

    def _enter(self, state: RunState):
        self.state = state
        logger.debug(f"state -> {state.value}")

    async def locate(self, stores: list[StoreTarget]) -> list[StoreImages]:
        self._enter(RunState.LOCATING)
        try:
            return await self.locator.locate_all(stores)
        finally:
            await self.locator.stop()

    async def run(self, stores: list[StoreTarget]) -> RunResult:
        started_at = self._now()
        logger.info(f"Starting flyer run for {len(stores)} stores")

        located = await self.locate(stores)

        if any(item.image_urls for item in located) and self.limits.quota_recovery_pause > 0:
            logger.info(f"Waiting {self.limits.quota_recovery_pause:.0f}s for API quota recovery...")
            await self._sleep(self.limits.quota_recovery_pause)

        snapshots = []
        all_stats = []
        for idx, item in enumerate(located, 1):
            logger.info(f"[{idx}/{len(located)}] Extracting: {item.store.name}")
            snapshot, stats = await self.process_store(item)
            snapshots.append(snapshot)
            all_stats.append(stats)

        finished_at = self._now()
        daily = DailySnapshot(date=finished_at.date(), stores=tuple(snapshots))
        self._enter(RunState.FINALIZED)
        logger.info(f"Run finished: {daily.product_count} products from {len(snapshots)} stores",
                    extra={"products": daily.product_count, "stores": len(snapshots)})

        if self.writer is not None:
            self.writer.write(daily)

        return RunResult(snapshot=daily, stats=all_stats,
                         started_at=started_at, finished_at=finished_at)

    async def process_store(self, item: StoreImages) -> tuple[StoreSnapshot, StoreStats]:
        """Extract every selected image of one store. Never raises."""
        store = item.store
        stats = StoreStats(store_name=store.name, images_found=len(item.image_urls),
                           locate_error=item.error)
        products: list[ProductRecord] = []

        if not item.image_urls:
            logger.info(f"{store.name}: no images, skipping")

        selected = select_images(item.image_urls, self.limits.max_images_per_store, store.name)
        stats.images_selected = len(selected)

        for idx, url in enumerate(selected, 1):
            logger.info(f"  [{idx}/{len(selected)}] {url[:80]}")
            called_model = False
            try:
                records, called_model = await self.process_image(url, stats)
                self._enter(RunState.ACCUMULATING)
                products.extend(records)
            except Exception as e:
                # Nothing from one image may stop the store
                stats.skipped["unexpected"] += 1
                logger.error(f"  Unexpected error (continuing): {url[:80]} - {e}",
                             extra={"store": store.name, "url": url}, exc_info=True)

            if called_model and idx < len(selected):
                logger.info(f"  Waiting {self.limits.courtesy_delay:.0f}s...")
                await self._sleep(self.limits.courtesy_delay)

        stats.products = len(products)
        snapshot = StoreSnapshot(store_name=store.name, products=tuple(products),
                                 scraped_at=self._now())
        logger.info(
            f"{store.name}: {stats.products} products "
            f"(found={stats.images_found}, extracted={stats.images_extracted}, "
            f"skipped={stats.images_skipped})",
            extra={"store": store.name, "products": stats.products,
                   "images_found": stats.images_found,
                   "images_skipped": stats.images_skipped},
        )
        return snapshot, stats

    async def process_image(self, url: str, stats: StoreStats) -> tuple[list[ProductRecord], bool]:
        """
        Run one image through fetch → admit → normalize → extract → parse.

        Returns the parsed records and whether Gemini was actually called.
        Expected per-image failures are counted as skips here.
        """
        self._enter(RunState.FETCHING)
        try:
            downloaded = await self.fetcher.fetch(url)
        except ImageFetchError as e:
            stats.skipped["download_failed"] += 1
            logger.warning(f"  Skipped (download failed): {e}")
            return [], False
        stats.images_fetched += 1
        size_kb = round(downloaded.size_bytes / 1024)

        self._enter(RunState.ADMITTING)
        if not admit_image(downloaded, self.limits):
            stats.skipped["too_small"] += 1
            logger.info(f"  Skipped ({size_kb}KB < {self.limits.min_image_bytes // 1024}KB: icon or thumbnail)")
            return [], False

        self._enter(RunState.NORMALIZING)
        try:
            image = normalize_image(downloaded.data, self.limits)
        except ImageNormalizeError as e:
            stats.skipped["undecodable"] += 1
            logger.warning(f"  Skipped (bad image): {e}")
            return [], False
        if image.resized:
            logger.info(f"  Resized: {size_kb}KB -> {round(len(image.data) / 1024)}KB "
                        f"({image.width}x{image.height})")

        self._enter(RunState.EXTRACTING)
        try:
            text = await self.extractor.extract(image)
        except ExtractionError as e:
            stats.skipped["rate_limited" if e.retryable else "api_error"] += 1
            logger.warning(f"  Skipped (API error): {e}")
            return [], False

        self._enter(RunState.PARSING)
        records = parse_products(text)
        stats.images_extracted += 1
        logger.info(f"  -> {len(records)} products")
        return records, True
