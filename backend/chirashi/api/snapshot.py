"""
Snapshot API.
Serves the current daily_prices.json as-is for the display layer.
"""

from fastapi import APIRouter, HTTPException

from chirashi.config import get_settings
from chirashi.logging_config import get_logger
from chirashi.storage import load_snapshot

logger = get_logger("snapshot_api")
router = APIRouter(prefix="/snapshot", tags=["snapshot"])


@router.get("/")
async def get_snapshot():
    """Return the latest daily snapshot."""
    path = get_settings().output_path
    try:
        snapshot = load_snapshot(path)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read snapshot {path}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Snapshot unreadable")

    if snapshot is None:
        raise HTTPException(status_code=404, detail="No snapshot yet")
    return snapshot


@router.get("/stores")
async def list_stores():
    """Store names with product counts and scrape times."""
    snapshot = await get_snapshot()
    return {
        "date": snapshot.get("date"),
        "stores": [
            {
                "storeName": s.get("storeName"),
                "scrapedAt": s.get("scrapedAt"),
                "productCount": len(s.get("products") or []),
            }
            for s in snapshot.get("stores") or []
        ],
    }
