"""Detail-page enrichment: fetch, run the attribute cascade, merge onto the listing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from urllib.parse import urljoin

from bs4 import BeautifulSoup

import faire_scout.selectors as selectors
from faire_scout.enrichment.attributes import DetailDocument, extract_attributes, lookup_attribute, scalar_text
from faire_scout.errors import DetailFetchError
from faire_scout.extractors.schemas import EnrichedRecord, ListingRecord, parse_price, price_to_minor
from faire_scout.health import HealthMonitor
from faire_scout.logging_config import get_logger
from faire_scout.normalizers import (
    BRAND_URL_TEMPLATE,
    SITE_ROOT,
    normalize_candidate,
    normalize_image_url,
)
from faire_scout.transport import Transport, build_cookie_header, random_user_agent

LOGGER = get_logger(__name__)

DEFAULT_REFERER = SITE_ROOT + "/"
_TITLE_SUFFIX_SEPARATORS = (" | ", " - Faire")


@dataclass
class DetailFields:
    """Everything a detail page offered, before it is merged onto a listing."""

    name: str = ""
    brand_name: str = ""
    brand_id: str = ""
    brand_url: str = ""
    image_url: str | None = None
    wholesale_price_minor: int = 0
    retail_price_minor: int = 0
    description: str = ""
    sku: str = ""
    origin_country: str = ""
    shipping_info: str = ""
    attributes: list[str] = field(default_factory=list)
    strategy: str = ""


def _text(soup: BeautifulSoup, selector: str) -> str:
    node = soup.select_one(selector)
    if node is None:
        return ""
    return " ".join(node.get_text(" ").split())


def _meta(soup: BeautifulSoup, selector: str) -> str:
    node = soup.select_one(selector)
    if node is None:
        return ""
    return " ".join((node.get("content") or "").split())


def _page_title(soup: BeautifulSoup) -> str:
    if soup.title is None:
        return ""
    title = " ".join(soup.title.get_text(" ").split())
    for separator in _TITLE_SUFFIX_SEPARATORS:
        title = title.split(separator, 1)[0]
    return title.strip()


def _brand_link(soup: BeautifulSoup) -> tuple[str, str]:
    link = soup.select_one("a[href*='/brand/']")
    if link is None:
        return "", ""
    href = link.get("href") or ""
    token = href.split("/brand/", 1)[1].split("?", 1)[0].split("#", 1)[0].strip("/") if "/brand/" in href else ""
    return token, urljoin(SITE_ROOT, href) if href else ""


def _strip_label(value: str, label: str) -> str:
    if value.lower().startswith(label.lower()):
        value = value[len(label):]
    return value.strip(" :")


def parse_detail(doc: DetailDocument) -> DetailFields:
    """Collect detail fields from embedded state, the attribute cascade and page metadata."""

    soup = doc.soup
    attributes, strategy = extract_attributes(doc)
    fields = DetailFields(attributes=attributes, strategy=strategy)

    product = doc.product
    if product:
        from_state = normalize_candidate(product, source="detail")
        if from_state is not None:
            fields.name = from_state.name
            fields.brand_name = from_state.brand_name
            fields.brand_id = from_state.brand_id
            fields.brand_url = from_state.brand_url
            fields.image_url = from_state.image_url
            fields.wholesale_price_minor = from_state.wholesale_price_minor
            fields.retail_price_minor = from_state.retail_price_minor
        fields.description = scalar_text(product.get("description") or product.get("short_description"))

    fields.name = (
        fields.name
        or _text(soup, selectors.DETAIL_TITLE)
        or _meta(soup, selectors.META_OG_TITLE)
        or _page_title(soup)
    )
    fields.brand_name = fields.brand_name or _text(soup, selectors.DETAIL_BRAND)
    if not fields.brand_id:
        brand_id, brand_url = _brand_link(soup)
        fields.brand_id = brand_id
        fields.brand_url = fields.brand_url or brand_url
    if fields.brand_id and not fields.brand_url:
        fields.brand_url = BRAND_URL_TEMPLATE.format(token=fields.brand_id)

    if not fields.image_url:
        image = soup.select_one(selectors.DETAIL_IMAGE)
        fields.image_url = normalize_image_url(
            _meta(soup, selectors.META_OG_IMAGE) or (image.get("src") if image is not None else None)
        )
    if not fields.wholesale_price_minor:
        fields.wholesale_price_minor = price_to_minor(parse_price(_text(soup, selectors.DETAIL_WHOLESALE_PRICE)))

    fields.description = (
        fields.description
        or _text(soup, selectors.DETAIL_DESCRIPTION)
        or _meta(soup, selectors.META_OG_DESCRIPTION)
        or _meta(soup, selectors.META_DESCRIPTION)
    )
    fields.sku = _strip_label(_text(soup, selectors.DETAIL_SKU), "SKU")
    fields.origin_country = _strip_label(_text(soup, selectors.DETAIL_LOCATION), "Made in")
    fields.shipping_info = _text(soup, selectors.DETAIL_SHIPPING)
    return fields


def merge_detail(record: ListingRecord, fields: DetailFields) -> EnrichedRecord:
    """Listing scalars win unless empty; attribute-derived fields are added alongside."""

    updates: dict[str, Any] = {}
    for name in (
        "name",
        "brand_name",
        "brand_id",
        "brand_url",
        "image_url",
        "wholesale_price_minor",
        "retail_price_minor",
    ):
        if not getattr(record, name) and getattr(fields, name):
            updates[name] = getattr(fields, name)

    attributes = fields.attributes
    updates.update(
        description=fields.description,
        sku=lookup_attribute(attributes, "sku") or fields.sku,
        origin_country=lookup_attribute(attributes, "origin_country") or fields.origin_country,
        shipping_info=lookup_attribute(attributes, "shipping_info") or fields.shipping_info,
        dimensions=lookup_attribute(attributes, "dimensions"),
        materials=lookup_attribute(attributes, "materials"),
        minimum_order_quantity=lookup_attribute(attributes, "minimum_order_quantity"),
        case_pack_quantity=lookup_attribute(attributes, "case_pack_quantity"),
        color=lookup_attribute(attributes, "color"),
        attributes=tuple(attributes),
        detail_fetch_succeeded=True,
        error=None,
    )
    return EnrichedRecord.from_listing(record, **updates)


class DetailEnricher:
    """Fetches one detail page per record; failures are recorded, never raised."""

    def __init__(
        self,
        transport: Transport,
        *,
        cookies: Iterable[Mapping[str, Any]] | None = None,
        proxy_url: str | None = None,
        timeout: float = 30.0,
        referer: str = DEFAULT_REFERER,
        health: HealthMonitor | None = None,
    ) -> None:
        self.transport = transport
        self.cookie_header = build_cookie_header(cookies)
        self.proxy_url = proxy_url
        self.timeout = timeout
        self.referer = referer
        self.health = health

    def build_headers(self) -> dict[str, str]:
        headers = {
            "Referer": self.referer,
            "User-Agent": random_user_agent(),
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Language": "en-US,en;q=0.9",
        }
        if self.cookie_header:
            headers["Cookie"] = self.cookie_header
        return headers

    async def fetch_document(self, record: ListingRecord) -> DetailDocument:
        response = await asyncio.wait_for(
            self.transport.fetch(record.product_url, headers=self.build_headers(), proxy=self.proxy_url),
            timeout=self.timeout,
        )
        if response.status != 200:
            raise DetailFetchError(
                "Unexpected detail status",
                url=record.product_url,
                product_id=record.product_id,
                status=response.status,
            )
        if not (response.body or "").strip():
            raise DetailFetchError("Empty detail body", url=record.product_url, product_id=record.product_id)
        return DetailDocument(response.body)

    async def enrich(self, record: ListingRecord) -> EnrichedRecord:
        try:
            doc = await self.fetch_document(record)
            enriched = merge_detail(record, parse_detail(doc))
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            LOGGER.warning("Failed details | product=%s | error=%s", record.product_id, reason)
            if self.health is not None:
                self.health.record_detail_error(product_id=record.product_id, reason=reason)
            return EnrichedRecord.from_listing(
                record,
                detail_fetch_succeeded=False,
                error=f"Detail fetch failed: {reason}",
            )

        if self.health is not None:
            self.health.record_detail_success(product_id=record.product_id)
        LOGGER.debug(
            "Enriched product | product=%s | attributes=%d",
            record.product_id,
            len(enriched.attributes),
        )
        return enriched
