"""Custom exception types for faire-scout."""

from __future__ import annotations

from typing import Optional


class ScoutError(Exception):
    """Base error carrying optional URL / product context."""

    default_message = "faire-scout failure."

    def __init__(
        self,
        message: str | None = None,
        *,
        url: Optional[str] = None,
        product_id: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        self.message = message or self.default_message
        self.url = url
        self.product_id = product_id
        self.status = status
        super().__init__(self.message)

    def __str__(self) -> str:
        context_parts: list[str] = []
        if self.url:
            context_parts.append(f"url={self.url}")
        if self.product_id:
            context_parts.append(f"product={self.product_id}")
        if self.status is not None:
            context_parts.append(f"status={self.status}")
        context = ", ".join(context_parts)
        return f"{self.message} ({context})" if context else self.message


class PageLoadError(ScoutError):
    """Raised when the listing page cannot be loaded at all."""

    default_message = "Failed to load page."


class DetailFetchError(ScoutError):
    """Raised when a product detail page cannot be fetched or is unusable."""

    default_message = "Detail fetch failed."


class ConfigError(ScoutError):
    """Raised when run settings are invalid."""

    default_message = "Invalid configuration."
