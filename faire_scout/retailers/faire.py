"""Playwright-backed listing session for Faire search and category pages."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from faire_scout.errors import PageLoadError
from faire_scout.extractors.dom_scan import DomScanExtractor
from faire_scout.extractors.dom_utils import scroll_step
from faire_scout.extractors.embedded_state import EmbeddedStateExtractor
from faire_scout.extractors.network import NetworkCapture
from faire_scout.logging_config import get_logger
from faire_scout.playwright_env import (
    VIEWPORT,
    apply_stealth,
    browser_name,
    close_browser,
    launch_browser,
    normalize_cookies,
    should_block,
)
from faire_scout.transport import random_user_agent

LOGGER = get_logger(__name__)

NAVIGATION_TIMEOUT_MS = 60_000


class FaireListingSession:
    """One browser, one page, one listing URL.

    Use as an async context manager; entering it launches the browser and
    loads ``start_url`` (raising ``PageLoadError`` when that fails).
    """

    def __init__(
        self,
        start_url: str,
        *,
        cookies: Iterable[Mapping[str, Any]] | None = None,
        proxy_url: str | None = None,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        block_resources: bool = True,
    ) -> None:
        self.start_url = start_url
        self.cookies = normalize_cookies(cookies)
        self.proxy_url = proxy_url
        self.navigation_timeout_ms = navigation_timeout_ms
        self.block_resources = block_resources
        self.network = NetworkCapture()
        self.blocked_requests = 0
        self._playwright: Any = None
        self._browser: Any = None
        self.context: Any = None
        self.page: Any = None

    async def __aenter__(self) -> "FaireListingSession":
        try:
            await self.start()
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def extractors(self) -> list[Any]:
        """Candidate extractors in priority order: network, embedded state, DOM."""

        return [
            self.network,
            EmbeddedStateExtractor(self.snapshot),
            DomScanExtractor(self.snapshot),
        ]

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        apply_stealth(self._playwright)
        try:
            self._browser = await launch_browser(self._playwright, self.proxy_url)
        except PlaywrightError as exc:
            raise PageLoadError(f"Unable to launch {browser_name()}: {exc}", url=self.start_url) from exc

        self.context = await self._browser.new_context(
            viewport=VIEWPORT,
            user_agent=random_user_agent(),
            locale="en-US",
        )
        if self.cookies:
            await self.context.add_cookies(self.cookies)
            LOGGER.info("Injected session cookies | count=%d", len(self.cookies))

        self.page = await self.context.new_page()
        if self.block_resources:
            await self.page.route("**/*", self._route)
        self.network.attach(self.page)

    async def _route(self, route: Any) -> None:
        request = route.request
        if should_block(request.resource_type, request.url):
            self.blocked_requests += 1
            await route.abort()
            return
        await route.continue_()

    async def open(self) -> None:
        LOGGER.info("Processing listing | url=%s", self.start_url)
        try:
            response = await self.page.goto(
                self.start_url,
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout_ms,
            )
        except PlaywrightError as exc:
            raise PageLoadError(str(exc), url=self.start_url) from exc
        if response is not None and response.status >= 400:
            raise PageLoadError("Listing page returned an error status", url=self.start_url, status=response.status)

    async def reveal(self) -> bool:
        return await scroll_step(self.page)

    async def settle(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def snapshot(self) -> str:
        return await self.page.content()

    async def close(self) -> None:
        if self.context is not None:
            try:
                await self.context.close()
            except PlaywrightError:
                pass
            self.context = None
        await close_browser(self._browser)
        self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
