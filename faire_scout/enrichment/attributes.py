"""Attribute extraction strategies for product detail pages.

Each strategy turns a detail document into a flat list of ``"Key: value"``
strings. ``ATTRIBUTE_CASCADE`` runs them in priority order and stops at the
first one that produces anything.
"""

from __future__ import annotations

import re
from functools import cached_property
from typing import Any, Callable, Iterable, Sequence

from bs4 import BeautifulSoup

from faire_scout.extractors.embedded_state import descend, read_next_data
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

STATE_PRODUCT_PATHS: tuple[tuple[str, ...], ...] = (
    ("props", "pageProps", "product"),
    ("props", "pageProps", "data", "product"),
    ("props", "pageProps", "initialState", "product"),
    ("props", "pageProps", "productPage", "product"),
    ("props", "pageProps", "initialProps", "product"),
)

ATTRIBUTE_GROUP_KEYS = ("attribute_groups", "attributeGroups", "attributes", "product_attributes", "specifications")
GROUP_ENTRY_KEYS = ("entries", "attributes", "values", "items")
VARIANT_KEYS = ("variants", "options", "product_options")
VARIANT_ATTRIBUTE_KEYS = ("attributes", "option_values", "optionValues", "values")

# (label, candidate keys on the product object)
SCALAR_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("SKU", ("sku", "skuNumber", "sku_number", "retailer_sku")),
    ("Made in", ("made_in", "madeIn", "origin_country", "originCountry", "country_of_origin", "made_in_country")),
    ("Minimum Order", ("minimum_order_quantity", "minimumOrderQuantity", "min_order_quantity", "minimum_order")),
    ("Case Pack", ("unit_multiplier", "unitMultiplier", "case_pack", "casePack", "case_pack_quantity")),
)

MIN_VALUE_LENGTH = 1
MAX_NAME_LENGTH = 60
MAX_VALUE_LENGTH = 200

# A quote optionally preceded by up to three escaping backslashes, so pairs
# are found at any JSON-in-JS-in-JSON nesting depth.
_Q = r'\\{0,3}"'
_CHUNK = r'[^"\\]{0,400}?'

PLAIN_PAIR_RE = re.compile(
    rf"{_Q}name{_Q}\s*:\s*{_Q}(?P<name>{_CHUNK}){_Q}\s*,\s*"
    rf"{_Q}value{_Q}\s*:\s*{_Q}(?P<value>{_CHUNK}){_Q}"
)
TRANSLATED_PAIR_RE = re.compile(
    rf"{_Q}name{_Q}\s*:\s*\{{\s*{_Q}translated{_Q}\s*:\s*{_Q}(?P<name>{_CHUNK}){_Q}\s*\}}\s*,\s*"
    rf"{_Q}value{_Q}\s*:\s*(?:\{{\s*{_Q}translated{_Q}\s*:\s*)?{_Q}(?P<value>{_CHUNK}){_Q}"
)

FREE_TEXT_LABELS: tuple[tuple[str, str], ...] = (
    ("SKU", r"SKU"),
    ("Made in", r"Made in"),
    ("Dimensions", r"Dimensions?"),
    ("Materials", r"Materials?"),
    ("Color", r"Colou?r"),
    ("Ships from", r"Ships from"),
    ("Minimum Order", r"Minimum order(?: quantity)?"),
    ("Case Pack", r"Case pack"),
)
_FREE_TEXT_RES = tuple(
    (label, re.compile(rf"(?i)\b{pattern}\b[ \t]*[:#]?\s*(?P<value>[^\n]{{1,80}}?)[ \t]*(?:\n|$)"))
    for label, pattern in FREE_TEXT_LABELS
)
_JSON_PUNCTUATION = set('{}[]"\\')

FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "sku": ("sku", "item number", "style number", "product code"),
    "origin_country": ("made in", "country of origin", "origin"),
    "dimensions": ("dimensions", "dimension", "measurements"),
    "materials": ("materials", "material", "ingredients"),
    "color": ("color", "colour"),
    "shipping_info": ("ships from", "ships in", "shipping", "delivery"),
    "minimum_order_quantity": ("minimum order", "min order", "minimum"),
    "case_pack_quantity": ("case pack", "unit multiplier", "sold in"),
}


def dedupe(items: Iterable[str]) -> list[str]:
    """Drop repeated entries, keeping the first occurrence order."""

    seen: set[str] = set()
    unique: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            unique.append(item)
    return unique


def _clean(value: str) -> str:
    return " ".join(value.split())


def _plausible(name: str, value: str) -> bool:
    return (
        MIN_VALUE_LENGTH <= len(name) <= MAX_NAME_LENGTH
        and MIN_VALUE_LENGTH <= len(value) <= MAX_VALUE_LENGTH
    )


def scalar_text(value: Any) -> str:
    """Render a state value (string, number, translated wrapper or list) as text."""

    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return _clean(value)
    if isinstance(value, dict):
        for key in ("translated", "value", "name", "label", "text"):
            if key in value:
                return scalar_text(value[key])
        return ""
    if isinstance(value, list):
        parts = [scalar_text(item) for item in value]
        return ", ".join(part for part in parts if part)
    return ""


def _pair(entry: Any) -> str | None:
    if not isinstance(entry, dict):
        return None
    name = scalar_text(entry.get("name") or entry.get("label") or entry.get("key") or entry.get("title"))
    value = scalar_text(entry.get("value") if "value" in entry else entry.get("values"))
    if not name or not value:
        return None
    return f"{name}: {value}"


class DetailDocument:
    """One fetched detail page, parsed lazily into the views the strategies need."""

    def __init__(self, html: str) -> None:
        self.html = html or ""

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "html.parser")

    @cached_property
    def state(self) -> dict[str, Any] | None:
        return read_next_data(self.soup)

    @cached_property
    def product(self) -> dict[str, Any] | None:
        return find_state_product(self.state)

    @cached_property
    def script_texts(self) -> list[str]:
        return [script.string or script.get_text() for script in self.soup.find_all("script")]

    @cached_property
    def visible_text(self) -> str:
        soup = BeautifulSoup(self.html, "html.parser")
        for node in soup(["script", "style", "noscript", "template"]):
            node.decompose()
        return soup.get_text("\n")


def find_state_product(state: dict[str, Any] | None) -> dict[str, Any] | None:
    if not state:
        return None
    for path in STATE_PRODUCT_PATHS:
        candidate = descend(state, path)
        if isinstance(candidate, dict) and candidate:
            return candidate
    return None


def attribute_groups(product: dict[str, Any]) -> list[str]:
    """Flatten sectioned, flat and per-variant attribute shapes into ``"Key: value"`` strings."""

    attributes: list[str] = []

    for key in ATTRIBUTE_GROUP_KEYS:
        groups = product.get(key)
        if isinstance(groups, dict):
            groups = [{"name": name, "value": value} for name, value in groups.items()]
        if not isinstance(groups, list):
            continue
        for group in groups:
            if not isinstance(group, dict):
                continue
            entries = next(
                (group[k] for k in GROUP_ENTRY_KEYS if isinstance(group.get(k), list)),
                None,
            )
            if entries is None or not any(isinstance(entry, dict) for entry in entries):
                pair = _pair(group)
                if pair:
                    attributes.append(pair)
                continue
            for entry in entries:
                pair = _pair(entry)
                if pair:
                    attributes.append(pair)

    for key in VARIANT_KEYS:
        variants = product.get(key)
        if not isinstance(variants, list):
            continue
        for variant in variants:
            if not isinstance(variant, dict):
                continue
            for attr_key in VARIANT_ATTRIBUTE_KEYS:
                values = variant.get(attr_key)
                if isinstance(values, dict):
                    for name, value in values.items():
                        text = scalar_text(value)
                        if text:
                            attributes.append(f"{_clean(str(name))}: {text}")
                elif isinstance(values, list):
                    attributes.extend(pair for pair in map(_pair, values) if pair)

    return dedupe(attributes)


def scalar_attributes(product: dict[str, Any], existing: Sequence[str] = ()) -> list[str]:
    """Known scalar product fields as attribute strings, skipping labels already present."""

    taken = {entry.split(":", 1)[0].strip().lower() for entry in existing}
    folded: list[str] = []
    for label, keys in SCALAR_FIELDS:
        if label.lower() in taken:
            continue
        for key in keys:
            text = scalar_text(product.get(key))
            if text:
                folded.append(f"{label}: {text}")
                break
    return folded


def structured_state_strategy(doc: DetailDocument) -> list[str]:
    product = doc.product
    if not product:
        return []
    attributes = attribute_groups(product)
    return attributes + scalar_attributes(product, attributes)


def _pairs_from(pattern: re.Pattern[str], text: str) -> list[str]:
    found: list[str] = []
    for match in pattern.finditer(text or ""):
        name = _clean(match.group("name"))
        value = _clean(match.group("value"))
        if _plausible(name, value):
            found.append(f"{name}: {value}")
    return found


def plain_pair_strategy(text: str) -> list[str]:
    """``"name":"X","value":"Y"`` pairs at any escaping depth."""

    return _pairs_from(PLAIN_PAIR_RE, text)


def translated_pair_strategy(text: str) -> list[str]:
    """``"name":{"translated":"X"},"value":{"translated":"Y"}`` pairs at any escaping depth."""

    return _pairs_from(TRANSLATED_PAIR_RE, text)


SCRIPT_PATTERN_STRATEGIES: tuple[Callable[[str], list[str]], ...] = (
    translated_pair_strategy,
    plain_pair_strategy,
)


def script_pattern_strategy(doc: DetailDocument) -> list[str]:
    attributes: list[str] = []
    for text in doc.script_texts:
        if not text or "name" not in text:
            continue
        for strategy in SCRIPT_PATTERN_STRATEGIES:
            attributes.extend(strategy(text))
    return dedupe(attributes)


def free_text_strategy(text: str) -> list[str]:
    """Label-anchored captures over rendered text; one value per label."""

    attributes: list[str] = []
    for label, pattern in _FREE_TEXT_RES:
        for match in pattern.finditer(text or ""):
            value = _clean(match.group("value")).strip(" :")
            if not value or _JSON_PUNCTUATION.intersection(value):
                continue
            attributes.append(f"{label}: {value}")
            break
    return attributes


def visible_text_strategy(doc: DetailDocument) -> list[str]:
    return free_text_strategy(doc.visible_text)


ATTRIBUTE_CASCADE: tuple[tuple[str, Callable[[DetailDocument], list[str]]], ...] = (
    ("structured_state", structured_state_strategy),
    ("script_patterns", script_pattern_strategy),
    ("free_text", visible_text_strategy),
)


def extract_attributes(doc: DetailDocument) -> tuple[list[str], str]:
    """Run the cascade; return the first non-empty attribute list and its strategy name."""

    for name, strategy in ATTRIBUTE_CASCADE:
        try:
            attributes = strategy(doc)
        except Exception as exc:
            LOGGER.debug("Attribute strategy failed | strategy=%s | error=%s", name, exc)
            continue
        if attributes:
            return attributes, name
    return [], ""


def _synonyms_for(field: str) -> tuple[str, ...]:
    key = field.strip().lower()
    if key in FIELD_SYNONYMS:
        return FIELD_SYNONYMS[key]
    for synonyms in FIELD_SYNONYMS.values():
        if key in synonyms:
            return synonyms
    return (key,)


def lookup_attribute(attributes: Sequence[str], field: str) -> str:
    """Return the value of the first attribute whose key matches ``field`` or a synonym.

    Prefix matches are preferred over substring matches for each synonym.
    """

    parsed: list[tuple[str, str]] = []
    for entry in attributes:
        if ":" not in entry:
            continue
        key, value = entry.split(":", 1)
        parsed.append((key.strip().lower(), value.strip()))

    for synonym in _synonyms_for(field):
        for key, value in parsed:
            if key.startswith(synonym) and value:
                return value
        for key, value in parsed:
            if synonym in key and value:
                return value
    return ""
