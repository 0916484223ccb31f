"""
Turns free-form Gemini text into validated ProductRecords.

Model output is untrusted: anything that cannot be read degrades to zero
records for that image, never an exception.
"""

import json
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from pydantic import ValidationError

from chirashi.logging_config import get_logger
from chirashi.models import CATCH_ALL_CATEGORY, CATEGORIES, Price, ProductRecord

logger = get_logger("parser")

TAX_RATE = Decimal("1.08")
DEFAULT_UNIT = "1点"

# Anything above this is a misread (a JAN code, a phone number), not a shelf price
MAX_PRICE_YEN = 1_000_000

_FENCE_RE = re.compile(r"^```\w*\n?|```$")


def extract_json_block(text: str) -> Optional[str]:
    """First '{' to last '}' of the text, fences stripped."""
    clean = _FENCE_RE.sub("", (text or "").strip())
    start = clean.find("{")
    end = clean.rfind("}")
    if start == -1 or end <= start:
        return None
    return clean[start:end + 1]


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def coerce_price(value: Any) -> Optional[int]:
    """Yen amount as int; '1,280' and '198円' style strings are accepted."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = re.sub(r"[,\s円¥￥]", "", value)
        if not value:
            return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite() or abs(amount) > MAX_PRICE_YEN:
        return None
    return _round_half_up(amount)


def derive_prices(tax_excl: Optional[int], tax_incl: Optional[int]) -> Price:
    """Fill in whichever tax variant is missing at the 8% reduced rate."""
    if tax_excl is not None and tax_incl is None:
        tax_incl = _round_half_up(Decimal(tax_excl) * TAX_RATE)
    elif tax_incl is not None and tax_excl is None:
        tax_excl = _round_half_up(Decimal(tax_incl) / TAX_RATE)
    return Price(tax_excl=tax_excl, tax_incl=tax_incl)


def normalize_category(value: Any) -> str:
    if isinstance(value, str) and value.strip() in CATEGORIES:
        return value.strip()
    return CATCH_ALL_CATEGORY


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def normalize_product(raw: Any) -> Optional[ProductRecord]:
    """One candidate record, or None when it has no usable price."""
    if not isinstance(raw, dict):
        return None

    price = raw.get("price")
    if not isinstance(price, dict):
        price = {}
    tax_excl = coerce_price(price.get("taxExcl"))
    tax_incl = coerce_price(price.get("taxIncl"))
    if tax_excl is None and tax_incl is None:
        return None

    unit = raw.get("unit")
    try:
        return ProductRecord(
            product_name=_optional_text(raw.get("productName")) or "",
            price=derive_prices(tax_excl, tax_incl),
            unit=_optional_text(unit) or DEFAULT_UNIT,
            category=normalize_category(raw.get("category")),
            valid_from=_optional_text(raw.get("validFrom")),
            valid_to=_optional_text(raw.get("validTo")),
        )
    except ValidationError as e:
        logger.debug(f"Dropping product record: {e}")
        return None


def parse_products(text: str) -> list[ProductRecord]:
    """
    Parse Gemini's answer for one flyer image.

    Returns an empty list when the text has no JSON object, the JSON is
    invalid, or there is no "products" array.
    """
    block = extract_json_block(text)
    if block is None:
        logger.warning("Skipping image: no JSON object in model response")
        return []

    try:
        payload = json.loads(block)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping image: invalid JSON in model response ({e})")
        return []

    products = payload.get("products") if isinstance(payload, dict) else None
    if not isinstance(products, list):
        return []

    records = []
    for raw in products:
        record = normalize_product(raw)
        if record is not None:
            records.append(record)

    dropped = len(products) - len(records)
    if dropped:
        logger.info(f"Dropped {dropped} product(s) without a readable price")
    return records
