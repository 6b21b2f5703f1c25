"""Helper utilities for safely interacting with the listing page."""

from __future__ import annotations

import asyncio
import random
from typing import Any

from playwright.async_api import Error as PlaywrightError

from faire_scout.playwright_env import apply_wait_policy

_HANDLEABLE_ERRORS: tuple[type[BaseException], ...] = (PlaywrightError,)

SCROLL_STEP_PX = 400
SCROLL_LIMIT_PX = 20_000


async def human_wait(
    min_ms: int = 350,
    max_ms: int = 900,
    *,
    obey_policy: bool = True,
) -> None:
    """Sleep for a random, human-like interval between the provided bounds."""

    if min_ms < 0:
        min_ms = 0
    if max_ms < min_ms:
        max_ms = min_ms

    if obey_policy:
        min_ms, max_ms = apply_wait_policy(min_ms, max_ms)

    delay = random.uniform(min_ms / 1000, max_ms / 1000)
    await asyncio.sleep(delay)


async def _safe_evaluate(page: Any, script: str) -> Any:
    """Evaluate *script* on the page, swallowing transient browser errors."""

    try:
        return await page.evaluate(script)
    except _HANDLEABLE_ERRORS:
        return None


async def _get_scroll_height(page: Any) -> int | None:
    """Return the current scroll height if available."""

    value = await _safe_evaluate(page, "(() => document.body ? document.body.scrollHeight : null)()")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def scroll_step(
    page: Any,
    *,
    step_px: int = SCROLL_STEP_PX,
    max_steps: int = 8,
    limit_px: int = SCROLL_LIMIT_PX,
) -> bool:
    """Scroll down in ``step_px`` increments; ``True`` when the page grew."""

    baseline = await _get_scroll_height(page)
    if baseline is None:
        return False

    for _ in range(max_steps):
        position = await _safe_evaluate(
            page,
            f"(() => {{ window.scrollBy(0, {step_px}); return window.scrollY + window.innerHeight; }})()",
        )
        if position is None:
            return False
        await human_wait(120, 220)
        if position >= min(baseline, limit_px):
            break

    updated = await _get_scroll_height(page)
    if updated is None:
        return False
    return updated > baseline
