"""Capture product candidates from listing-API responses as the page emits them."""

from __future__ import annotations

import re
from typing import Any

from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

SEARCH_URL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"/api/v\d+/layout/search-product-tiles", re.I),
    re.compile(r"/api/v\d+/search/products", re.I),
    re.compile(r"/api/v\d+/layout/search-filters", re.I),
    re.compile(r"search-product-tiles", re.I),
    re.compile(r"product-tiles", re.I),
    re.compile(r"graphql", re.I),
)

CAPTURED_RESOURCE_TYPES = frozenset({"xhr", "fetch"})

PAYLOAD_PRODUCT_PATHS: tuple[tuple[str, ...], ...] = (
    ("products",),
    ("results",),
    ("data", "products"),
    ("data", "searchProducts", "products"),
    ("data", "browseProducts", "products"),
    ("data", "search", "products"),
)


def _descend(payload: Any, path: tuple[str, ...]) -> Any:
    value = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def extract_products_from_payload(payload: Any) -> list[dict[str, Any]]:
    """Return every product dict found under the known listing-payload paths."""

    if not isinstance(payload, dict):
        return []

    products: list[dict[str, Any]] = []

    tiles = payload.get("product_tiles")
    if isinstance(tiles, list):
        for tile in tiles:
            product = tile.get("product") if isinstance(tile, dict) else None
            if isinstance(product, dict):
                products.append(product)

    for path in PAYLOAD_PRODUCT_PATHS:
        value = _descend(payload, path)
        if isinstance(value, list):
            products.extend(entry for entry in value if isinstance(entry, dict))

    return products


class NetworkCapture:
    """Accumulates candidates from JSON responses for the lifetime of a page."""

    name = "network"

    def __init__(self, patterns: tuple[re.Pattern[str], ...] = SEARCH_URL_PATTERNS) -> None:
        self._patterns = patterns
        self._buffer: list[dict[str, Any]] = []
        self.captured_total = 0

    def attach(self, page: Any) -> None:
        page.on("response", self.handle_response)

    def accepts(self, url: str, resource_type: str, status: int, content_type: str) -> bool:
        if resource_type not in CAPTURED_RESOURCE_TYPES:
            return False
        if not any(pattern.search(url) for pattern in self._patterns):
            return False
        if status != 200:
            LOGGER.debug("Ignoring non-200 listing response | status=%s | url=%s", status, url)
            return False
        return "json" in content_type.lower()

    async def handle_response(self, response: Any) -> None:
        try:
            url = response.url
            if not self.accepts(
                url,
                response.request.resource_type,
                response.status,
                response.headers.get("content-type", ""),
            ):
                return
            payload = await response.json()
            products = extract_products_from_payload(payload)
        except Exception as exc:
            LOGGER.debug("Network capture error | error=%s", exc)
            return

        if not products:
            LOGGER.debug("No products found in listing response | url=%s", url)
            return

        self._buffer.extend(products)
        self.captured_total += len(products)
        LOGGER.info(
            "Captured listing response | products=%d | total=%d",
            len(products),
            self.captured_total,
        )

    def drain(self) -> list[dict[str, Any]]:
        """Return everything buffered since the previous drain."""

        drained, self._buffer = self._buffer, []
        return drained

    async def extract(self) -> list[dict[str, Any]]:
        return self.drain()
