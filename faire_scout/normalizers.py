"""Normalise loosely-typed listing candidates into ``ListingRecord`` objects.

Every field is resolved through an ordered tuple of accessor functions. The
first accessor that yields a non-empty value wins, so the fallback order for a
field is plain data that can be read (and tested) on its own.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Sequence
from urllib.parse import urljoin

from faire_scout.extractors.schemas import ListingRecord, parse_price, price_to_minor
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

SITE_ROOT = "https://www.faire.com"
PRODUCT_URL_TEMPLATE = SITE_ROOT + "/product/{token}"
BRAND_URL_TEMPLATE = SITE_ROOT + "/brand/{token}"
IMAGE_CDN_TEMPLATE = "https://cdn.faire.com/fastly/{token}.jpg"

# Unit-less integers below this are read as cents. Heuristic: a $1,000+ item
# sent in decimal units would be mis-scaled as cents.
AMBIGUOUS_CENTS_CEILING = 100_000

_IMAGE_TOKEN_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_PRODUCT_PATH_RE = re.compile(r"/product/([^/?#]+)")

Accessor = Callable[[dict[str, Any]], Any]
CompletenessPolicy = Callable[[ListingRecord], bool]


def key_path(*path: str) -> Accessor:
    """Return an accessor reading ``raw[path[0]][path[1]]...`` or ``None``."""

    def _get(raw: dict[str, Any]) -> Any:
        value: Any = raw
        for key in path:
            if not isinstance(value, dict):
                return None
            value = value.get(key)
        return value

    _get.__name__ = "key_path:" + ".".join(path)
    return _get


def token_from_url(*path: str) -> Accessor:
    """Return an accessor extracting the ``/product/<token>`` segment from a URL field."""

    read = key_path(*path)

    def _get(raw: dict[str, Any]) -> str | None:
        value = read(raw)
        if not isinstance(value, str):
            return None
        match = _PRODUCT_PATH_RE.search(value)
        return match.group(1) if match else None

    _get.__name__ = "token_from_url:" + ".".join(path)
    return _get


def _text(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return " ".join(value.split())
    return ""


def _cents(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(int(round(value)), 0)
    if isinstance(value, str):
        try:
            return max(int(round(float(value.strip()))), 0)
        except ValueError:
            return 0
    return 0


def _ambiguous_minor(value: Any) -> int:
    """Coerce a price whose unit is not stated in its field name."""

    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, float) and not value.is_integer():
        return price_to_minor(value)
    if isinstance(value, (int, float)):
        number = int(value)
        if number <= 0:
            return 0
        if number < AMBIGUOUS_CENTS_CEILING:
            return number
        return number * 100
    if isinstance(value, str):
        return price_to_minor(parse_price(value))
    return 0


def first_value(
    raw: dict[str, Any],
    accessors: Sequence[Accessor],
    *,
    coerce: Callable[[Any], Any] = _text,
) -> Any:
    """Evaluate ``accessors`` in order and return the first non-empty coerced value."""

    for accessor in accessors:
        value = coerce(accessor(raw))
        if value:
            return value
    return None


PRODUCT_ID_ACCESSORS: tuple[Accessor, ...] = (
    key_path("token"),
    key_path("id"),
    key_path("productToken"),
    key_path("product_token"),
    key_path("slug"),
    token_from_url("productUrl"),
    token_from_url("url"),
)

NAME_ACCESSORS: tuple[Accessor, ...] = (
    key_path("name"),
    key_path("title"),
    key_path("productName"),
    key_path("product_name"),
)


def _bare_brand(raw: dict[str, Any]) -> str | None:
    brand = raw.get("brand")
    return brand if isinstance(brand, str) else None


BRAND_NAME_ACCESSORS: tuple[Accessor, ...] = (
    _bare_brand,
    key_path("brand", "name"),
    key_path("brandName"),
    key_path("brand_name"),
)

BRAND_ID_ACCESSORS: tuple[Accessor, ...] = (
    key_path("brand", "token"),
    key_path("brandToken"),
    key_path("brand_token"),
    key_path("brand", "slug"),
    key_path("brand", "id"),
    key_path("brandId"),
    key_path("brand_id"),
)

BRAND_URL_ACCESSORS: tuple[Accessor, ...] = (
    key_path("brand", "url"),
    key_path("brandUrl"),
    key_path("brand_url"),
)


def _image_from_object(value: Any) -> str | None:
    if not isinstance(value, dict):
        return None
    for key in ("url", "src", "token"):
        candidate = value.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return None


def _images_first_object(raw: dict[str, Any]) -> str | None:
    images = raw.get("images")
    if isinstance(images, list) and images:
        return _image_from_object(images[0])
    return None


def _images_first_string(raw: dict[str, Any]) -> str | None:
    images = raw.get("images")
    if isinstance(images, list) and images and isinstance(images[0], str):
        return images[0]
    return None


def _image_object(raw: dict[str, Any]) -> str | None:
    return _image_from_object(raw.get("image"))


def _image_string(raw: dict[str, Any]) -> str | None:
    image = raw.get("image")
    return image if isinstance(image, str) else None


IMAGE_ACCESSORS: tuple[Accessor, ...] = (
    _images_first_object,
    _images_first_string,
    _image_object,
    _image_string,
    key_path("imageUrl"),
    key_path("image_url"),
    key_path("thumbnail"),
    key_path("thumbnailUrl"),
    key_path("thumbnail_url"),
    key_path("tile_image", "url"),
    key_path("square_image", "url"),
    key_path("medium_image_url"),
    key_path("original_image_url"),
)

WHOLESALE_MINOR_ACCESSORS: tuple[Accessor, ...] = (
    key_path("price", "wholesale_price_cents"),
    key_path("wholesale_price_cents"),
    key_path("wholesalePriceCents"),
    key_path("price", "wholesale_price", "amount_cents"),
    key_path("wholesale_price", "amount_cents"),
    key_path("wholesalePrice", "amountCents"),
)

WHOLESALE_UNITLESS_ACCESSORS: tuple[Accessor, ...] = (
    key_path("wholesalePrice"),
    key_path("wholesale_price"),
    key_path("price", "wholesale"),
)

RETAIL_MINOR_ACCESSORS: tuple[Accessor, ...] = (
    key_path("price", "retail_price_cents"),
    key_path("retail_price_cents"),
    key_path("retailPriceCents"),
    key_path("price", "retail_price", "amount_cents"),
    key_path("retail_price", "amount_cents"),
    key_path("retailPrice", "amountCents"),
)

RETAIL_UNITLESS_ACCESSORS: tuple[Accessor, ...] = (
    key_path("msrp"),
    key_path("retailPrice"),
    key_path("retail_price"),
    key_path("price", "retail"),
)

BADGE_FLAGS: tuple[tuple[str, str], ...] = (
    ("isBestseller", "bestseller"),
    ("isProvenSuccess", "proven"),
    ("isNew", "new"),
)


def normalize_image_url(value: str | None) -> str | None:
    """Return an absolute image URL for ``value`` (CDN token, ``//`` or site path)."""

    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed or trimmed.startswith("data:"):
        return None
    if trimmed.startswith("//"):
        return f"https:{trimmed}"
    if trimmed.startswith(("http://", "https://")):
        return trimmed
    if trimmed.startswith("/"):
        return urljoin(SITE_ROOT, trimmed)
    if _IMAGE_TOKEN_RE.match(trimmed):
        return IMAGE_CDN_TEMPLATE.format(token=trimmed)
    return trimmed


def resolve_image_url(raw: dict[str, Any]) -> str | None:
    return normalize_image_url(first_value(raw, IMAGE_ACCESSORS, coerce=lambda v: v if isinstance(v, str) else None))


def resolve_price(
    raw: dict[str, Any],
    minor_accessors: Sequence[Accessor],
    unitless_accessors: Sequence[Accessor],
) -> int:
    """Resolve a price in minor units; unknown prices resolve to 0."""

    minor = first_value(raw, minor_accessors, coerce=_cents)
    if minor:
        return minor
    return first_value(raw, unitless_accessors, coerce=_ambiguous_minor) or 0


def canonical_badge(text: str) -> str:
    lowered = " ".join(text.lower().replace("_", " ").split())
    if not lowered:
        return ""
    if "bestseller" in lowered or "best seller" in lowered:
        return "bestseller"
    if "proven" in lowered:
        return "proven"
    if lowered == "new" or lowered.startswith("new "):
        return "new"
    return lowered


def resolve_badges(raw: dict[str, Any]) -> frozenset[str]:
    badges: set[str] = set()
    for key in ("badges", "tags"):
        entries = raw.get(key)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if isinstance(entry, dict):
                entry = entry.get("type") or entry.get("name") or entry.get("label")
            if isinstance(entry, str):
                badge = canonical_badge(entry)
                if badge:
                    badges.add(badge)
    for flag, badge in BADGE_FLAGS:
        if raw.get(flag) is True:
            badges.add(badge)
    return frozenset(badges)


def has_name_and_brand(record: ListingRecord) -> bool:
    """Default completeness policy: id, name and a brand identifier are all present."""

    return bool(record.product_id and record.name and (record.brand_name or record.brand_id))


def never_complete(record: ListingRecord) -> bool:
    """Completeness policy that sends every record through detail enrichment."""

    return False


def normalize_candidate(
    raw: Any,
    *,
    source: str = "",
    completeness: CompletenessPolicy = has_name_and_brand,
) -> ListingRecord | None:
    """Convert a raw candidate into a ``ListingRecord``; ``None`` when it has no identifier."""

    if not isinstance(raw, dict):
        return None

    product_id = first_value(raw, PRODUCT_ID_ACCESSORS)
    if not product_id:
        return None

    brand_id = first_value(raw, BRAND_ID_ACCESSORS) or ""
    brand_url = first_value(raw, BRAND_URL_ACCESSORS) or ""
    if brand_url:
        brand_url = urljoin(SITE_ROOT, brand_url)
    elif brand_id:
        brand_url = BRAND_URL_TEMPLATE.format(token=brand_id)

    record = ListingRecord(
        product_id=product_id,
        product_url=PRODUCT_URL_TEMPLATE.format(token=product_id),
        name=first_value(raw, NAME_ACCESSORS) or "",
        brand_name=first_value(raw, BRAND_NAME_ACCESSORS) or "",
        brand_id=brand_id,
        brand_url=brand_url,
        image_url=resolve_image_url(raw),
        wholesale_price_minor=resolve_price(raw, WHOLESALE_MINOR_ACCESSORS, WHOLESALE_UNITLESS_ACCESSORS),
        retail_price_minor=resolve_price(raw, RETAIL_MINOR_ACCESSORS, RETAIL_UNITLESS_ACCESSORS),
        badges=resolve_badges(raw),
        source=source,
    )
    return record.model_copy(update={"has_complete_data": completeness(record)})


def normalize_candidates(
    candidates: Iterable[Any],
    *,
    source: str = "",
    completeness: CompletenessPolicy = has_name_and_brand,
) -> list[ListingRecord]:
    """Normalise ``candidates`` in order, silently dropping unusable ones."""

    records: list[ListingRecord] = []
    dropped = 0
    for raw in candidates:
        record = normalize_candidate(raw, source=source, completeness=completeness)
        if record is None:
            dropped += 1
            continue
        records.append(record)
    if dropped:
        LOGGER.debug("Dropped candidates without identifier | source=%s | count=%d", source or "unknown", dropped)
    return records


__all__ = [
    "BRAND_ID_ACCESSORS",
    "BRAND_NAME_ACCESSORS",
    "IMAGE_ACCESSORS",
    "NAME_ACCESSORS",
    "PRODUCT_ID_ACCESSORS",
    "canonical_badge",
    "first_value",
    "has_name_and_brand",
    "key_path",
    "never_complete",
    "normalize_candidate",
    "normalize_candidates",
    "normalize_image_url",
    "resolve_price",
]
