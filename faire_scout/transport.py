"""HTTP transport used to fetch product detail pages."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from faire_scout.logging_config import get_logger

LOGGER = get_logger(__name__)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.7; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (X11; Linux x86_64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:124.0) Gecko/20100101 Firefox/124.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.2; rv:124.0) Gecko/20100101 Firefox/124.0",
)

_RETRYABLE = (requests.ConnectionError, requests.Timeout)


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def build_cookie_header(cookies: Iterable[Mapping[str, Any]] | None) -> str:
    """Join ``[{"name": ..., "value": ...}]`` cookies into a ``Cookie`` header value."""

    if not cookies:
        return ""
    parts = [
        f"{cookie['name']}={cookie.get('value', '')}"
        for cookie in cookies
        if isinstance(cookie, Mapping) and cookie.get("name")
    ]
    return "; ".join(parts)


@dataclass(frozen=True)
class FetchResponse:
    status: int
    body: str
    url: str = ""


class Transport(Protocol):
    async def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        proxy: str | None = None,
    ) -> FetchResponse: ...


class RequestsTransport:
    """``requests.Session`` driven from a worker thread so the event loop stays free."""

    def __init__(self, *, timeout: float = 30.0, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()

    async def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        proxy: str | None = None,
    ) -> FetchResponse:
        return await asyncio.to_thread(self._fetch_sync, url, dict(headers or {}), proxy)

    @retry(
        retry=retry_if_exception_type(_RETRYABLE),
        stop=stop_after_attempt(3),
        wait=wait_random_exponential(multiplier=0.5, max=5),
        reraise=True,
    )
    def _fetch_sync(self, url: str, headers: dict[str, str], proxy: str | None) -> FetchResponse:
        proxies = {"http": proxy, "https": proxy} if proxy else None
        response = self.session.get(url, headers=headers, proxies=proxies, timeout=self.timeout)
        LOGGER.debug("Fetched detail page | status=%s | url=%s", response.status_code, url)
        return FetchResponse(status=response.status_code, body=response.text, url=response.url)

    def close(self) -> None:
        self.session.close()
