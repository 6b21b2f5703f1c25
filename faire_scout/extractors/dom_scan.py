"""Heuristic product-card scan over the visible listing DOM."""

from __future__ import annotations

import re
from typing import Any, Awaitable, Callable

from bs4 import BeautifulSoup, Tag

import faire_scout.selectors as selectors
from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

_PRODUCT_TOKEN_RE = re.compile(r"/product/([^/?#]+)")
_BRAND_TOKEN_RE = re.compile(r"/brand/([^/?#]+)")
_NEW_BADGE_RE = re.compile(r"\bnew\b", re.I)


def _closest_card(anchor: Tag) -> Tag:
    return (
        anchor.css.closest(selectors.CARD)
        or anchor.css.closest(selectors.CARD_ALT)
        or anchor.parent
        or anchor
    )


def _first_text(root: Tag, selector: str) -> str:
    node = root.select_one(selector)
    if node is None:
        return ""
    return " ".join(node.get_text(" ").split())


def _badges(card: Tag) -> list[str]:
    found: list[str] = []
    for element in card.select(selectors.CARD_BADGE):
        text = element.get_text(" ").lower()
        if "bestseller" in text and "bestseller" not in found:
            found.append("bestseller")
        if _NEW_BADGE_RE.search(text) and "new" not in found:
            found.append("new")
        if "proven" in text and "proven" not in found:
            found.append("proven")
    return found


def scan_product_cards(html: str) -> list[dict[str, Any]]:
    """Return one candidate per distinct product token linked from a named card."""

    soup = BeautifulSoup(html or "", "html.parser")
    seen: set[str] = set()
    items: list[dict[str, Any]] = []

    for anchor in soup.select(selectors.PRODUCT_LINK):
        match = _PRODUCT_TOKEN_RE.search(anchor.get("href") or "")
        if not match:
            continue
        token = match.group(1)
        if token in seen:
            continue

        card = _closest_card(anchor)
        name = _first_text(card, selectors.CARD_NAME) or " ".join((anchor.get("aria-label") or "").split())
        if not name:
            continue
        seen.add(token)

        brand_token = ""
        brand_link = card.select_one("a[href*='/brand/']")
        if brand_link is not None:
            brand_match = _BRAND_TOKEN_RE.search(brand_link.get("href") or "")
            brand_token = brand_match.group(1) if brand_match else ""

        image = card.select_one(selectors.CARD_IMAGE)
        image_url = None
        if image is not None:
            image_url = image.get("src") or image.get("data-src")

        items.append(
            {
                "token": token,
                "name": name,
                "brandName": _first_text(card, selectors.CARD_BRAND),
                "brandToken": brand_token,
                "imageUrl": image_url,
                "badges": _badges(card),
            }
        )

    return items


class DomScanExtractor:
    """Point-in-time extractor over the rendered listing markup."""

    name = "dom"

    def __init__(self, snapshot: Callable[[], Awaitable[str]]) -> None:
        self._snapshot = snapshot

    async def extract(self) -> list[dict[str, Any]]:
        try:
            html = await self._snapshot()
            return scan_product_cards(html)
        except Exception as exc:
            LOGGER.warning("DOM scan failed | error=%s", exc)
            return []
