"""Data validation schemas for listing and enriched product records."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


_PRICE_PATTERN = re.compile(r"(?P<number>-?\d{1,3}(?:,\d{3})*(?:\.\d+)?|-?\d*\.\d+)")
_CENT = Decimal("0.01")


def parse_price(text: str | None) -> float | None:
    """Parse a price-like string into a float.

    The function extracts the first decimal number found in the text, allowing for
    optional currency symbols, commas, and whitespace. Returns ``None`` when no
    number is present.
    """

    if not text:
        return None

    match = _PRICE_PATTERN.search(text)
    if not match:
        return None

    number = match.group("number").replace(",", "")
    try:
        value = float(number)
    except (TypeError, ValueError):
        return None

    if value <= 0 or value >= 100_000:
        return None

    return value


def price_to_minor(value: float | None) -> int:
    """Convert a decimal-unit price into integer minor units (cents)."""

    if value is None or value <= 0:
        return 0
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def minor_to_decimal(minor: int | None) -> Decimal:
    """Return ``minor`` cents as a two-place ``Decimal`` (``1250 -> 12.50``)."""

    if not minor or minor <= 0:
        return Decimal("0.00")
    return (Decimal(minor) / 100).quantize(_CENT)


def format_price(minor: int | None) -> str:
    """Render minor units as a dollar string, or ``""`` when unknown."""

    if not minor or minor <= 0:
        return ""
    return f"${minor_to_decimal(minor)}"


def _coerce_datetime(value: Any, field_name: str) -> datetime:
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if not isinstance(value, datetime):  # pragma: no cover
        raise TypeError(f"{field_name} must be a datetime")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value


class ListingRecord(BaseModel):
    """Canonical product record derived from listing-page data alone."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    product_id: str = Field(min_length=1)
    product_url: str
    name: str = ""
    brand_name: str = ""
    brand_id: str = ""
    brand_url: str = ""
    image_url: str | None = None
    wholesale_price_minor: int = 0
    retail_price_minor: int = 0
    badges: frozenset[str] = frozenset()
    has_complete_data: bool = False
    source: str = ""


class EnrichedRecord(ListingRecord):
    """A listing record augmented with detail-page attributes."""

    description: str = ""
    sku: str = ""
    origin_country: str = ""
    shipping_info: str = ""
    dimensions: str = ""
    materials: str = ""
    minimum_order_quantity: str = ""
    case_pack_quantity: str = ""
    color: str = ""
    attributes: tuple[str, ...] = ()
    scraped_at: datetime
    detail_fetch_succeeded: bool = False
    error: str | None = None

    @field_validator("scraped_at", mode="before")
    @classmethod
    def _ensure_utc(cls, value: Any) -> datetime:
        return _coerce_datetime(value, "scraped_at")

    @classmethod
    def from_listing(cls, record: ListingRecord, **updates: Any) -> "EnrichedRecord":
        """Promote ``record`` keeping every listing field, applying ``updates`` on top."""

        data = record.model_dump()
        data.update(updates)
        data.setdefault("scraped_at", datetime.now(timezone.utc))
        return cls.model_validate(data)
