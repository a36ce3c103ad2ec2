"""Custom exception types for pantrywatch."""

from __future__ import annotations

from typing import Optional


class CrawlError(Exception):
    """Base class for crawl failures carrying page/region/category context."""

    default_message = "Crawl step failed."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        url: Optional[str] = None,
        region: Optional[str] = None,
        category: Optional[str] = None,
    ) -> None:
        self.message = message or self.default_message
        self.url = url
        self.region = region
        self.category = category
        super().__init__(self.message)

    def __str__(self) -> str:
        context_parts: list[str] = []
        if self.url:
            context_parts.append(f"url={self.url}")
        if self.region:
            context_parts.append(f"region={self.region}")
        if self.category:
            context_parts.append(f"category={self.category}")
        context = ", ".join(context_parts)
        return f"{self.message} ({context})" if context else self.message


class RegionBootstrapError(CrawlError):
    """Raised when the delivery region cannot be set and verified.

    Pricing and availability depend on the region, so this aborts the job.
    """

    default_message = "Unable to set and verify the delivery region."


class NavigationTimeoutError(CrawlError):
    """Raised when a page fails to load within its navigation timeout."""

    default_message = "Failed to load page."


class CategoryNotFoundError(CrawlError):
    """Raised when a requested category is not among the discovered ones."""

    default_message = "Category not found."

    def __init__(self, category: str, available: list[str]) -> None:
        self.available = list(available)
        listing = ", ".join(self.available) if self.available else "none"
        super().__init__(
            f'Category "{category}" not found; available categories: {listing}',
            category=category,
        )


class PersistenceError(Exception):
    """Base class for product/job store failures."""


class PersistenceConnectionError(PersistenceError):
    """Raised when the store connection is dead and must be re-established."""


class PersistenceWriteError(PersistenceError):
    """Raised when a single write fails for a reason other than connectivity."""
