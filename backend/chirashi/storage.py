"""
Snapshot persistence. One JSON document, overwritten on every run.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from chirashi.logging_config import get_logger
from chirashi.models import DailySnapshot

logger = get_logger("storage")


class SnapshotWriter:
    """Writes daily_prices.json atomically so readers never see half a file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def write(self, snapshot: DailySnapshot) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".daily_prices.", suffix=".tmp",
                                        dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_json_dict(), f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(f"Snapshot saved to {self.path}",
                    extra={"path": str(self.path), "products": snapshot.product_count})
        return self.path


def load_snapshot(path: Path) -> Optional[dict[str, Any]]:
    """Read the current snapshot, or None if no run has written one yet."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
