"""Centralised helpers for Playwright launch + anti-bot configuration."""

from __future__ import annotations

import os
import shlex
from functools import lru_cache
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

from playwright.async_api import Browser, BrowserType, Playwright

_FALSE_VALUES = {"0", "false", "no", "off"}

BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media", "stylesheet"})
BLOCKED_URL_PATTERNS: tuple[str, ...] = (
    "google-analytics",
    "googletagmanager",
    "facebook.com/tr",
    "doubleclick.net",
    "hotjar",
    "amplitude",
    "segment.com",
    "mixpanel",
    ".woff",
    ".svg",
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".webp",
)

VIEWPORT = {"width": 1440, "height": 900}
COOKIE_DOMAIN = ".faire.com"


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in _FALSE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


@lru_cache(maxsize=1)
def headless_enabled() -> bool:
    """Return True if Playwright should run in headless mode."""

    return _as_bool(os.getenv("FAIRE_SCOUT_HEADLESS"), True)


def stealth_enabled() -> bool:
    """Return True when stealth evasion scripts should be applied."""

    return _as_bool(os.getenv("FAIRE_SCOUT_STEALTH"), True)


def browser_name() -> str:
    name = (os.getenv("FAIRE_SCOUT_BROWSER") or "firefox").strip().lower()
    return name if name in {"firefox", "chromium", "webkit"} else "firefox"


@lru_cache(maxsize=1)
def _stealth_instance():
    if not stealth_enabled():
        return None
    try:
        from playwright_stealth import Stealth
    except ImportError:
        return None

    lang_env = os.getenv("FAIRE_SCOUT_LANGS") or "en-US,en"
    langs = tuple(
        entry.strip()
        for entry in lang_env.split(",")
        if entry.strip()
    ) or ("en-US", "en")

    return Stealth(navigator_languages_override=langs[:2])


def apply_stealth(playwright: Playwright) -> None:
    """Hook the provided Playwright object with stealth evasions when available."""

    instance = _stealth_instance()
    if instance is None:
        return
    try:
        instance.hook_playwright_context(playwright)
    except Exception:
        # Best-effort; fall back silently if Playwright internals change.
        pass


def proxy_config(url: str | None = None) -> dict[str, str] | None:
    """Playwright proxy settings for ``url`` (or ``FAIRE_SCOUT_PROXY``), credentials split out."""

    raw = url or os.getenv("FAIRE_SCOUT_PROXY")
    if not raw:
        return None
    parsed = urlparse(raw if "://" in raw else f"http://{raw}")
    server = f"{parsed.scheme}://{parsed.hostname}"
    if parsed.port:
        server += f":{parsed.port}"
    config = {"server": server}
    if parsed.username:
        config["username"] = parsed.username
        config["password"] = parsed.password or ""
    return config


def launch_kwargs(proxy_url: str | None = None) -> dict[str, Any]:
    """Return kwargs passed to ``<browser>.launch``."""

    kwargs: dict[str, Any] = {"headless": headless_enabled()}

    if browser_name() == "chromium":
        args = [
            "--disable-blink-features=AutomationControlled",
            "--disable-dev-shm-usage",
            "--lang=en-US",
            "--no-default-browser-check",
        ]
        extra_args = os.getenv("FAIRE_SCOUT_CHROMIUM_ARGS")
        if extra_args:
            args.extend(shlex.split(extra_args))
        kwargs["args"] = args

    proxy = proxy_config(proxy_url)
    if proxy:
        kwargs["proxy"] = proxy

    slow_mo = _env_int("FAIRE_SCOUT_SLOW_MO_MS", 0)
    if slow_mo > 0:
        kwargs["slow_mo"] = slow_mo

    return kwargs


def browser_type(playwright: Playwright) -> BrowserType:
    return getattr(playwright, browser_name())


async def launch_browser(playwright: Playwright, proxy_url: str | None = None) -> Browser:
    """Launch the configured browser according to env overrides."""

    return await browser_type(playwright).launch(**launch_kwargs(proxy_url))


async def close_browser(browser: Browser | None) -> None:
    """Close the provided browser without raising."""

    if browser is None:
        return
    try:
        await browser.close()
    except Exception:
        pass


def should_block(resource_type: str, url: str) -> bool:
    """True for heavy or tracking requests the listing page does not need."""

    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    return any(pattern in url for pattern in BLOCKED_URL_PATTERNS)


def normalize_cookies(cookies: Iterable[Mapping[str, Any]] | None) -> list[dict[str, Any]]:
    """Shape user-supplied cookies for ``BrowserContext.add_cookies``."""

    normalized: list[dict[str, Any]] = []
    for cookie in cookies or ():
        if not isinstance(cookie, Mapping) or not cookie.get("name"):
            continue
        entry: dict[str, Any] = {"name": str(cookie["name"]), "value": str(cookie.get("value", ""))}
        if cookie.get("url"):
            entry["url"] = cookie["url"]
        else:
            entry["domain"] = cookie.get("domain") or COOKIE_DOMAIN
            entry["path"] = cookie.get("path") or "/"
        for key in ("expires", "httpOnly", "secure", "sameSite"):
            if key in cookie:
                entry[key] = cookie[key]
        normalized.append(entry)
    return normalized


def apply_wait_policy(min_ms: int, max_ms: int) -> tuple[int, int]:
    """Apply global wait overrides + multiplier for human_wait() calls."""

    min_override = _env_int("FAIRE_SCOUT_WAIT_MIN_MS", min_ms)
    max_override = _env_int("FAIRE_SCOUT_WAIT_MAX_MS", max_ms)
    multiplier = max(_env_float("FAIRE_SCOUT_WAIT_MULTIPLIER", 1.0), 0.1)

    scaled_min = int(min_override * multiplier)
    scaled_max = int(max_override * multiplier)
    if scaled_max < scaled_min:
        scaled_max = scaled_min
    return scaled_min, scaled_max


def batch_delay_bounds(default: tuple[int, int] = (1000, 2000)) -> tuple[int, int]:
    """Delay between detail batches."""

    min_ms = _env_int("FAIRE_SCOUT_BATCH_DELAY_MIN_MS", default[0])
    max_ms = _env_int("FAIRE_SCOUT_BATCH_DELAY_MAX_MS", default[1])
    if max_ms < 0:
        max_ms = 0
    if min_ms < 0:
        min_ms = 0
    if max_ms < min_ms:
        max_ms = min_ms
    return min_ms, max_ms
