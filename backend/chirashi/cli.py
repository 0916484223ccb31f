"""
Daily flyer run: locate → extract → write daily_prices.json.

Usage: chirashi-scrape [--locate-only] [--store NAME] [--max-images N]
                       [--output PATH] [--stores-file PATH] [--no-email]
"""

import argparse
import asyncio
import fcntl
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from chirashi.analysis.gemini_extractor import GeminiFlyerExtractor
from chirashi.config import Settings, load_store_targets
from chirashi.errors import ConfigurationError
from chirashi.images.fetcher import ImageFetcher
from chirashi.logging_config import get_logger, new_run_id, setup_logging
from chirashi.models import StoreTarget
from chirashi.pipeline import FlyerPipeline
from chirashi.reporting import build_report, send_email
from chirashi.scraping.flyer_locator import FlyerLocator
from chirashi.storage import SnapshotWriter

logger = get_logger("cli")

LOCK_FILE = "/tmp/chirashi_scrape.lock"  # Prevent concurrent cron runs


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Scrape supermarket flyers and extract prices")
    p.add_argument("--locate-only", action="store_true",
                   help="Only locate flyer images and print them as JSON")
    p.add_argument("--store", action="append", default=[],
                   help="Restrict to stores whose name contains this text (repeatable)")
    p.add_argument("--max-images", type=int, default=None,
                   help="Override the per-store image cap")
    p.add_argument("--output", "-o", type=Path, default=None,
                   help="Snapshot path (default: OUTPUT_PATH setting)")
    p.add_argument("--stores-file", type=Path, default=None,
                   help="JSON store list (default: STORES_FILE setting or built-in list)")
    p.add_argument("--no-email", action="store_true", help="Skip the summary email")
    p.add_argument("--dotenv-path", default=None)
    p.add_argument("--verbose", "-v", action="store_true")
    return p


def filter_stores(stores: list[StoreTarget], names: list[str]) -> list[StoreTarget]:
    if not names:
        return stores
    return [s for s in stores if any(n in s.name for n in names)]


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Fold CLI flags into a copy of the settings."""
    update = {}
    if args.output is not None:
        update["output_path"] = args.output
    if args.stores_file is not None:
        update["stores_file"] = args.stores_file
    if args.max_images is not None:
        if args.max_images < 1:
            raise ConfigurationError("--max-images must be at least 1")
        update["pipeline"] = settings.pipeline.model_copy(
            update={"max_images_per_store": args.max_images})
    return settings.model_copy(update=update) if update else settings


async def locate_only(settings: Settings, stores: list[StoreTarget]) -> list[dict]:
    async with FlyerLocator(settings.pipeline) as locator:
        located = await locator.locate_all(stores)
    return [
        {"storeName": item.store.name, "source": item.store.url, "imageUrls": item.image_urls}
        for item in located
    ]


async def run(settings: Settings, stores: list[StoreTarget], email: bool = True):
    # Fatal config problems must surface before any network activity
    api_key = settings.require_gemini_key()
    logger.info(f"Using key: {api_key[:6]}...{api_key[-4:]}")

    extractor = GeminiFlyerExtractor(
        api_key=api_key,
        model_name=settings.gemini_model,
        limits=settings.pipeline,
    )
    async with ImageFetcher(settings.pipeline) as fetcher:
        pipeline = FlyerPipeline(
            locator=FlyerLocator(settings.pipeline),
            fetcher=fetcher,
            extractor=extractor,
            limits=settings.pipeline,
            writer=SnapshotWriter(settings.output_path),
        )
        result = await pipeline.run(stores)

    report = build_report(result)
    logger.info("\n" + report)
    if email:
        subject = (f"Flyer Prices {result.snapshot.date.isoformat()}: "
                   f"{result.snapshot.product_count} products")
        send_email(settings, subject, report)
    return result


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.dotenv_path:
        load_dotenv(args.dotenv_path)
    load_dotenv()

    try:
        settings = apply_overrides(Settings(), args)
        setup_logging(level=logging.DEBUG if args.verbose else logging.INFO,
                      log_file=settings.log_file, json_logs=settings.json_logs,
                      run_id=new_run_id())
        stores = filter_stores(load_store_targets(settings.stores_file), args.store)
        if not stores:
            raise ConfigurationError("No stores match the given filter")

        if args.locate_only:
            located = asyncio.run(locate_only(settings, stores))
            print(json.dumps(located, ensure_ascii=False, indent=2))
            return 0

        asyncio.run(run(settings, stores, email=not args.no_email))
        return 0
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2


def locked_main() -> int:
    """Entry point for cron: exits quietly if another run holds the lock."""
    try:
        lock_fd = os.open(LOCK_FILE, os.O_CREAT | os.O_RDWR)
        fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        print("Another scrape is already running. Exiting.", file=sys.stderr)
        return 0

    try:
        return main()
    finally:
        fcntl.flock(lock_fd, fcntl.LOCK_UN)
        os.close(lock_fd)


if __name__ == "__main__":
    sys.exit(locked_main())
