"""
Run configuration using Pydantic Settings.
Secrets and paths are loaded from environment variables (or .env); the
store list comes from a JSON file or the built-in defaults.
"""

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from chirashi.errors import ConfigurationError
from chirashi.models import SiteFamily, StoreTarget

DEFAULT_MODEL = "gemini-2.0-flash"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class PipelineLimits(BaseModel):
    """
    Heuristic thresholds and pacing constants.

    These were tuned against the current listing sites and drift with them,
    so every value is overridable (e.g. PIPELINE__MAX_IMAGES_PER_STORE=8).
    """

    # Locator
    min_image_dimension: int = 500
    max_aspect_ratio: float = 4.0
    min_aspect_ratio: float = 0.2
    navigation_timeout_ms: int = 60000
    settle_wait_ms: int = 3000
    inter_store_pause: float = 2.0

    # Fetch / admission / normalize
    max_redirects: int = 5
    request_timeout: float = 60.0
    min_image_bytes: int = 50 * 1024
    max_image_width: int = 1024
    jpeg_quality: int = 80

    # Extraction
    max_images_per_store: int = 5
    max_retries: int = 2
    retry_wait: float = 90.0
    courtesy_delay: float = 8.0
    quota_recovery_pause: float = 60.0


class Settings(BaseSettings):
    """Run settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Gemini (required for extraction runs, checked by require_gemini_key)
    gemini_api_key: str | None = None
    gemini_model: str = DEFAULT_MODEL

    # Output / input
    output_path: Path = Path("data/daily_prices.json")
    stores_file: Path | None = None

    # Logging
    log_file: str | None = "logs/scrape.log"
    json_logs: bool = True

    # Email summary (optional)
    email_sender: str | None = None
    email_password: str | None = None
    email_recipient: str | None = None
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587

    pipeline: PipelineLimits = PipelineLimits()

    def require_gemini_key(self) -> str:
        if not self.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not set (environment or .env)")
        return self.gemini_api_key

    @property
    def email_configured(self) -> bool:
        return bool(self.email_sender and self.email_password and self.email_recipient)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


DEFAULT_STORES: tuple[StoreTarget, ...] = (
    StoreTarget(
        name="スーパーみらべる東十条店",
        url="https://chirashi.kurashiru.com/stores/3836e998-39a3-462d-a0d0-40eba62a0046",
        family=SiteFamily.FLYER_HOSTING,
    ),
    StoreTarget(
        name="コモディイイダ東十条店",
        url="https://tokubai.co.jp/%E3%82%B3%E3%83%A2%E3%83%87%E3%82%A3%E3%82%A4%E3%82%A4%E3%83%80/7547",
        family=SiteFamily.LISTING_AGGREGATOR,
    ),
    StoreTarget(
        name="サミット王子桜田通り店",
        url="https://tokubai.co.jp/%E3%82%B5%E3%83%9F%E3%83%83%E3%83%88/81738",
        family=SiteFamily.LISTING_AGGREGATOR,
    ),
    StoreTarget(
        name="スーパーみらべる十条店",
        url="https://chirashi.kurashiru.com/stores/145cc4cb-df2f-40eb-af71-d781622c0f4a",
        family=SiteFamily.FLYER_HOSTING,
    ),
    StoreTarget(
        name="オーケー十条店",
        url="https://chirashi.kurashiru.com/stores/43344c79-4ca2-41cb-8d77-c217156d60ef",
        family=SiteFamily.FLYER_HOSTING,
    ),
    StoreTarget(
        name="業務スーパー王子店",
        url="https://chirashi.kurashiru.com/stores/f851643f-efe0-45de-a7b8-98263d6130b8",
        family=SiteFamily.FLYER_HOSTING,
    ),
    StoreTarget(
        name="イオンスタイル赤羽店",
        url="https://chirashi.kurashiru.com/stores/92d7d7a8-f768-404a-bb91-b5dba21e7b34",
        family=SiteFamily.FLYER_HOSTING,
    ),
    StoreTarget(
        name="DCM東十条店",
        url="https://chirashi.kurashiru.com/stores/596f33b5-8461-4f14-941d-af83a271ea1b",
        family=SiteFamily.FLYER_HOSTING,
    ),
)


def load_store_targets(path: Path | None = None) -> list[StoreTarget]:
    """
    Load the store list.

    The file is a JSON array of {"name", "url", "family"} objects. With no
    path the built-in list is returned.
    """
    if path is None:
        return list(DEFAULT_STORES)

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read store list {path}: {e}") from e

    if not isinstance(raw, list):
        raise ConfigurationError(f"Store list {path} must be a JSON array")

    try:
        return [StoreTarget.model_validate(item) for item in raw]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid store entry in {path}: {e}") from e
