"""Read product candidates from the ``__NEXT_DATA__`` state embedded in a page."""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Sequence

from bs4 import BeautifulSoup

import faire_scout.selectors as selectors
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

LISTING_STATE_PATHS: tuple[tuple[str, ...], ...] = (
    ("props", "pageProps", "products"),
    ("props", "pageProps", "data", "products"),
    ("props", "pageProps", "initialState", "products"),
    ("props", "pageProps", "results"),
)


def descend(obj: Any, path: Sequence[str]) -> Any:
    """Follow ``path`` through nested dicts, returning ``None`` on any miss."""

    value = obj
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def read_next_data(html: str | BeautifulSoup) -> dict[str, Any] | None:
    """Parse the ``__NEXT_DATA__`` script of ``html``; ``None`` when missing or invalid."""

    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html or "", "html.parser")
    script = soup.select_one(selectors.NEXT_DATA)
    if script is None:
        return None
    raw = script.string or script.get_text()
    if not raw or not raw.strip():
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.debug("Embedded state is not valid JSON")
        return None
    return payload if isinstance(payload, dict) else None


def products_from_state(state: dict[str, Any] | None) -> list[dict[str, Any]]:
    """Return the first list found under ``LISTING_STATE_PATHS``."""

    if not state:
        return []
    for path in LISTING_STATE_PATHS:
        value = descend(state, path)
        if not isinstance(value, list):
            continue
        products: list[dict[str, Any]] = []
        for entry in value:
            if not isinstance(entry, dict):
                continue
            nested = entry.get("product")
            products.append(nested if isinstance(nested, dict) else entry)
        return products
    return []


class EmbeddedStateExtractor:
    """Point-in-time extractor over a document snapshot."""

    name = "embedded_state"

    def __init__(self, snapshot: Callable[[], Awaitable[str]]) -> None:
        self._snapshot = snapshot

    async def extract(self) -> list[dict[str, Any]]:
        try:
            html = await self._snapshot()
            return products_from_state(read_next_data(html))
        except Exception as exc:
            LOGGER.warning("Embedded state extraction failed | error=%s", exc)
            return []
