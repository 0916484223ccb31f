"""
Logging for the flyer pipeline.

Console output is human-readable; the rotating file gets one JSON object per
line so a day's run can be grepped by store or run id. Every record emitted
under the ``chirashi`` logger carries the id of the run that produced it.
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "chirashi"

# Per-request logging from these libraries drowns the per-image progress lines
NOISY_LOGGERS = ("httpx", "httpcore", "google_genai", "asyncio")

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime", "run_id"}


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


class RunIdFilter(logging.Filter):
    """Stamps ``record.run_id`` so every line of one scrape can be correlated."""

    def __init__(self, run_id: str = "-"):
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record; fields from ``extra=`` are lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
                                 .isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", "-"),
            "message": record.getMessage(),
        }
        entry.update({k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Japanese store and product names stay readable in the file
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None,
                  json_logs: bool = False, run_id: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``chirashi`` logger for one process.

    Args:
        level: Level for chirashi loggers; third-party loggers stay at WARNING
            unless level is DEBUG
        log_file: Rotating log file (10MB, 30 backups); console only when None
        json_logs: Write the file as JSON lines instead of plain text
        run_id: Tag attached to every record; "-" for long-lived processes

    Returns:
        The configured ``chirashi`` logger
    """
    console_formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(run_id)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_filter = RunIdFilter(run_id or "-")

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.addFilter(run_filter)
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024,
                                           backupCount=30, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter() if json_logs else console_formatter)
        file_handler.addFilter(run_filter)
        logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the ``chirashi`` logger, e.g. ``get_logger("locator")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
