"""Category listing traversal.

The paginator walks at most ``max_pages_per_category`` listing pages of one
category and gathers product detail URLs in first-seen order.  Listing URLs
are collected up front because visiting a detail page discards the listing.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Iterable, Sequence

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

import pantrywatch.selectors as selectors
from pantrywatch.config import CrawlSettings
from pantrywatch.errors import NavigationTimeoutError
from pantrywatch.extractors.dom_utils import settle
from pantrywatch.logging_config import get_logger

LOGGER = get_logger(__name__)


def is_product_url(
    url: str,
    origin: str,
    *,
    markers: Sequence[str] = selectors.PRODUCT_URL_MARKERS,
    blocked: Sequence[str] = selectors.BLOCKED_URL_FRAGMENTS,
) -> bool:
    """Return True for a storefront-native product detail URL."""

    if not url or not url.startswith(origin):
        return False
    if not any(marker in url for marker in markers):
        return False
    return not any(fragment in url for fragment in blocked)


def dedupe_in_order(urls: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for url in urls:
        if url in seen:
            continue
        seen.add(url)
        ordered.append(url)
    return ordered


class ListingPaginator:
    """Collect product detail URLs from a category's listing pages."""

    def __init__(
        self,
        settings: CrawlSettings,
        *,
        strategies: Sequence[str] = selectors.PRODUCT_LINK_STRATEGIES,
        retry_wait: Any | None = None,
    ) -> None:
        self.settings = settings
        self.strategies = tuple(strategies)
        self.retry_wait = retry_wait or wait_random_exponential(multiplier=0.5, max=5)

    async def open_listing(self, session: Any, url: str) -> None:
        """Load the first listing page, retrying transient navigation failures."""

        @retry(
            retry=retry_if_exception_type(NavigationTimeoutError),
            stop=stop_after_attempt(3),
            wait=self.retry_wait,
            reraise=True,
        )
        async def _open() -> None:
            await session.navigate(url, timeout_ms=self.settings.navigation_timeout_ms)

        await _open()
        await settle(self.settings.settle_delay_ms)

    async def product_urls_on_page(self, session: Any) -> tuple[list[str], str | None]:
        """Apply the strategies in order; the first one yielding product URLs wins."""

        for strategy in self.strategies:
            try:
                hrefs = await session.evaluate(selectors.HREFS_FOR_SELECTOR_SCRIPT, strategy)
            except Exception as exc:
                LOGGER.debug("Strategy %s failed: %s", strategy, exc)
                continue
            matched = dedupe_in_order(
                href for href in hrefs or [] if is_product_url(href, self.settings.origin)
            )
            if matched:
                return matched, strategy
        return [], None

    async def advance(self, session: Any) -> bool:
        """Move to the next listing page; False when there is nowhere to go."""

        try:
            control = await session.evaluate(
                selectors.NEXT_PAGE_CONTROL_SCRIPT,
                [
                    selectors.PAGINATION_FORWARD,
                    selectors.PAGINATION_SELECTED,
                    selectors.PAGINATION_PAGE_LINK,
                ],
            )
        except Exception as exc:
            LOGGER.error("Failed to locate next page control: %s", exc)
            return False
        if not control:
            return False

        try:
            await session.click_and_wait_for_navigation(
                control["selector"],
                timeout_ms=self.settings.pagination_timeout_ms,
            )
        except NavigationTimeoutError as exc:
            # The click registered, so the page counter still moves on.
            LOGGER.warning("Pagination navigation timed out; continuing: %s", exc)
        except Exception as exc:
            LOGGER.error("Failed to click next page: %s", exc)
            return False

        await settle(self.settings.settle_delay_ms * 2)
        LOGGER.debug("Advanced listing via %s control", control.get("kind"))
        return True

    async def iter_listing_pages(self, session: Any, url: str) -> AsyncIterator[list[str]]:
        """Yield the product URLs of each listing page in turn.

        The initial navigation raises :class:`NavigationTimeoutError` after its
        retries are exhausted; later pagination problems only end the walk.
        """

        await self.open_listing(session, url)
        page_number = 1
        while page_number <= self.settings.max_pages_per_category:
            urls, strategy = await self.product_urls_on_page(session)
            if not urls:
                LOGGER.info("No product URLs found on page %d of %s", page_number, url)
                return
            LOGGER.info(
                "Found %d product URLs on page %d via %s",
                len(urls),
                page_number,
                strategy,
                extra={"url": url},
            )
            yield urls

            if page_number >= self.settings.max_pages_per_category:
                return
            if not await self.advance(session):
                LOGGER.info("No more listing pages after page %d", page_number)
                return
            page_number += 1

    async def collect(self, session: Any, url: str, category: str = "") -> list[str]:
        """Return every product URL of the category, deduplicated in first-seen order."""

        gathered: list[str] = []
        async for page_urls in self.iter_listing_pages(session, url):
            gathered.extend(page_urls)
        ordered = dedupe_in_order(gathered)
        LOGGER.info(
            "Found %d product URLs in %s",
            len(ordered),
            category or url,
            extra={"category": category or None},
        )
        return ordered
