"""
Data model for the flyer pipeline.

Snapshot types are Pydantic models whose aliases are the camelCase field
names the display layer reads from daily_prices.json. Transient per-image
values are plain dataclasses.
"""

from dataclasses import dataclass, field
import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SiteFamily(str, Enum):
    """Listing-site behaviours the locator knows how to handle."""

    FLYER_HOSTING = "flyer_hosting"
    LISTING_AGGREGATOR = "listing_aggregator"


class StoreTarget(BaseModel):
    """A store to scrape. Static configuration, immutable for a run."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    family: SiteFamily


CATEGORIES: tuple[str, ...] = (
    "肉",
    "魚",
    "野菜",
    "果物",
    "乳製品",
    "飲料",
    "惣菜",
    "日用品",
    "他",
)
CATCH_ALL_CATEGORY = "他"

Category = Literal["肉", "魚", "野菜", "果物", "乳製品", "飲料", "惣菜", "日用品", "他"]


class Price(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tax_excl: Optional[int] = Field(default=None, alias="taxExcl")
    tax_incl: Optional[int] = Field(default=None, alias="taxIncl")


class ProductRecord(BaseModel):
    """One priced product read off a flyer image."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_name: str = Field(alias="productName")
    price: Price
    unit: str = "1点"
    category: Category = CATCH_ALL_CATEGORY
    valid_from: Optional[str] = Field(default=None, alias="validFrom")
    valid_to: Optional[str] = Field(default=None, alias="validTo")


class StoreSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    store_name: str = Field(alias="storeName")
    products: tuple[ProductRecord, ...] = ()
    scraped_at: datetime = Field(alias="scrapedAt")


class DailySnapshot(BaseModel):
    """Root artifact of a run. Replaces any previous snapshot wholesale."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date: dt.date
    stores: tuple[StoreSnapshot, ...] = ()

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @property
    def product_count(self) -> int:
        return sum(len(s.products) for s in self.stores)


@dataclass(frozen=True)
class CandidateImage:
    """An <img> seen while locating. Never persisted."""

    url: str
    natural_width: float = 0
    natural_height: float = 0
    display_width: float = 0
    display_height: float = 0
    context: str = ""  # page the element was found on


@dataclass(frozen=True)
class DownloadedImage:
    data: bytes = field(repr=False)
    content_type: str
    size_bytes: int


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes = field(repr=False)
    mime_type: str
    width: int
    height: int
    resized: bool = False
