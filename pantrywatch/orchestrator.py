"""Crawl job orchestration.

One job walks ``STARTED -> BOOTSTRAPPING -> DISCOVERING -> CRAWLING ->
FINALIZING -> COMPLETED``; a region bootstrap failure, an unknown requested
category, the job timeout or an unexpected error ends it ``FAILED``.  Either
way the browser session and the stores are released exactly once.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from pantrywatch.browser import BrowserSession
from pantrywatch.catalog.discover import CategoryDiscoverer
from pantrywatch.config import CategoryRules, CrawlSettings
from pantrywatch.errors import (
    CategoryNotFoundError,
    PersistenceConnectionError,
    PersistenceError,
    RegionBootstrapError,
)
from pantrywatch.extractors.dom_utils import settle
from pantrywatch.extractors.schemas import Category
from pantrywatch.logging_config import get_logger
from pantrywatch.playwright_env import debug_screenshots_enabled
from pantrywatch.retailers.detail import DetailExtractor
from pantrywatch.retailers.listing import ListingPaginator
from pantrywatch.retailers.region import RegionBootstrapper
from pantrywatch.storage.base import JobStore, ProductStore
from pantrywatch.storage.batch import BatchPersister, BatchResult
from pantrywatch.storage.repo import JOB_COMPLETED, JOB_FAILED, JOB_PROCESSING

LOGGER = get_logger(__name__)

SessionFactory = Callable[[], Awaitable[Any]]


class CrawlPhase(str, Enum):
    STARTED = "started"
    BOOTSTRAPPING = "bootstrapping"
    DISCOVERING = "discovering"
    CRAWLING = "crawling"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CrawlSummary:
    job_id: int | None
    status: str
    products_scraped: int = 0
    products_added: int = 0
    products_updated: int = 0
    products_deactivated: int = 0
    errors: int = 0
    prices_recorded: int = 0
    categories_processed: list[str] = field(default_factory=list)
    categories_failed: list[str] = field(default_factory=list)
    error_message: str | None = None
    region: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == JOB_COMPLETED


def select_requested(categories: list[Category], requested: str) -> Category:
    """Return the discovered category named *requested* (case-insensitive)."""

    wanted = requested.strip().lower()
    for category in categories:
        if category.name.lower() == wanted:
            return category
    for category in categories:
        if (category.canonical_name or "").lower() == wanted:
            return category
    raise CategoryNotFoundError(requested, [category.name for category in categories])


class CrawlOrchestrator:
    """Drive one crawl job over a single reused browser session."""

    def __init__(
        self,
        settings: CrawlSettings,
        rules: CategoryRules,
        *,
        job_store: JobStore,
        product_store: ProductStore,
        session_factory: SessionFactory | None = None,
        bootstrapper: RegionBootstrapper | None = None,
        discoverer: CategoryDiscoverer | None = None,
        paginator: ListingPaginator | None = None,
        extractor: DetailExtractor | None = None,
    ) -> None:
        self.settings = settings
        self.rules = rules
        self.job_store = job_store
        self.product_store = product_store
        self.session_factory = session_factory or BrowserSession.launch
        self.bootstrapper = bootstrapper or RegionBootstrapper(settings)
        self.discoverer = discoverer or CategoryDiscoverer(settings, rules)
        self.paginator = paginator or ListingPaginator(settings)
        self.extractor = extractor or DetailExtractor(settings)

        self.phase = CrawlPhase.STARTED
        self.phases: list[CrawlPhase] = [CrawlPhase.STARTED]
        self.session: Any | None = None
        self.job_id: int | None = None
        self.totals = BatchResult()
        self.categories_processed: list[str] = []
        self.categories_failed: list[str] = []
        self._cleaned_up = False

    @property
    def products_scraped(self) -> int:
        """Products written this job; records that failed to persist are not counted."""

        return self.totals.saved

    def _enter(self, phase: CrawlPhase) -> None:
        LOGGER.debug("Crawl phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        self.phases.append(phase)

    async def run(self, category: str | None = None) -> CrawlSummary:
        """Run one job to a terminal status and return its summary.

        Job failures are reported through the summary and the job record; they
        are not raised.
        """

        started_at = datetime.now(timezone.utc)
        try:
            self.job_id = self.job_store.create_job()
        except PersistenceError as exc:
            LOGGER.error("Unable to create crawl job: %s", exc)
            self._enter(CrawlPhase.FAILED)
            await self._cleanup()
            return self._summary(JOB_FAILED, f"Unable to create crawl job: {exc}")

        LOGGER.info("Starting crawl job %s", self.job_id, extra={"region": self.settings.region_code})
        try:
            summary = await self._run_job(category, started_at)
        finally:
            await self._cleanup()

        LOGGER.info(
            "Crawl job %s %s | scraped=%d added=%d updated=%d errors=%d",
            summary.job_id,
            summary.status,
            summary.products_scraped,
            summary.products_added,
            summary.products_updated,
            summary.errors,
        )
        return summary

    async def _run_job(self, category: str | None, started_at: datetime) -> CrawlSummary:
        status = JOB_COMPLETED
        error_message: str | None = None
        deactivated = 0
        try:
            try:
                await asyncio.wait_for(self._execute(category), timeout=self.settings.job_timeout_s)
            except asyncio.TimeoutError:
                raise TimeoutError(f"Crawl job timed out after {self.settings.job_timeout_s:g}s") from None

            self._enter(CrawlPhase.FINALIZING)
            if self.settings.deactivate_missing and self.categories_processed:
                deactivated = self._deactivate_unseen(started_at)
        except (RegionBootstrapError, CategoryNotFoundError, TimeoutError) as exc:
            status, error_message = JOB_FAILED, str(exc)
            LOGGER.error("Crawl job %s failed: %s", self.job_id, exc)
        except Exception as exc:
            status, error_message = JOB_FAILED, str(exc) or exc.__class__.__name__
            LOGGER.exception("Crawl job %s failed unexpectedly", self.job_id)

        if status == JOB_FAILED:
            await self._capture_failure()
        self._enter(CrawlPhase.COMPLETED if status == JOB_COMPLETED else CrawlPhase.FAILED)
        self._update_job(
            status=status,
            products_scraped=self.products_scraped,
            products_added=self.totals.added,
            products_updated=self.totals.updated,
            products_deactivated=deactivated,
            error_message=error_message,
        )
        return self._summary(status, error_message, deactivated=deactivated)

    async def _execute(self, requested: str | None) -> None:
        self._enter(CrawlPhase.BOOTSTRAPPING)
        self.session = await self.session_factory()
        await self.bootstrapper.run(self.session)
        self._update_job(status=JOB_PROCESSING)

        self._enter(CrawlPhase.DISCOVERING)
        categories = await self.discoverer.discover(self.session)
        if requested:
            categories = [select_requested(categories, requested)]
        elif not categories:
            LOGGER.warning("No categories discovered; crawling the landing page as %s", self.settings.fallback_category)
            categories = [
                Category(
                    name=self.settings.fallback_category,
                    url=self.session.current_url or self.settings.landing_url,
                )
            ]

        self._enter(CrawlPhase.CRAWLING)
        for index, category in enumerate(categories):
            if index:
                await settle(self.settings.category_delay_ms)
            LOGGER.info(
                "Starting category %s (%d/%d)",
                category.name,
                index + 1,
                len(categories),
                extra={"category": category.name, "url": category.url},
            )
            try:
                await self.crawl_category(category)
            except Exception:
                self.categories_failed.append(category.name)
                LOGGER.exception("Error scraping category %s", category.name)
                continue
            self.categories_processed.append(category.name)
            self._update_job(
                products_scraped=self.products_scraped,
                products_added=self.totals.added,
                products_updated=self.totals.updated,
            )

    async def crawl_category(self, category: Category) -> BatchResult:
        """Collect, extract and persist one category; returns its own totals."""

        session = self.session
        urls = await self.paginator.collect(session, category.url, category.name)
        urls = urls[: self.settings.max_products_per_category]
        persister = BatchPersister(self.product_store, batch_size=self.settings.batch_size)
        category_totals = BatchResult()
        extracted = 0

        def absorb(result: BatchResult | None) -> None:
            nonlocal category_totals
            if result is None:
                return
            category_totals += result
            self.totals += result

        try:
            for index, url in enumerate(urls, start=1):
                LOGGER.debug("Processing product %d/%d: %s", index, len(urls), url)
                record = await self.extractor.extract(session, url, category.name)
                if record is not None:
                    extracted += 1
                    absorb(persister.add(record))
                await settle(self.settings.product_delay_ms)
        finally:
            absorb(persister.flush())

        LOGGER.info(
            "Completed %s: %d of %d products extracted, %d saved, %d errors",
            category.name,
            extracted,
            len(urls),
            category_totals.saved,
            category_totals.errors,
            extra={"category": category.name},
        )
        return category_totals

    def _deactivate_unseen(self, started_at: datetime) -> int:
        count = self.product_store.deactivate_unseen(self.categories_processed, started_at)
        if count:
            LOGGER.info("Deactivated %d products no longer listed", count)
        return count

    def _update_job(self, **fields: Any) -> None:
        if self.job_id is None:
            return
        try:
            self.job_store.update_job(self.job_id, **fields)
        except PersistenceConnectionError as exc:
            LOGGER.warning("Job update lost its connection: %s", exc)
            try:
                self.job_store.reconnect()  # type: ignore[attr-defined]
                self.job_store.update_job(self.job_id, **fields)
            except Exception as retry_exc:
                LOGGER.error("Job %s update failed after reconnect: %s", self.job_id, retry_exc)
        except (PersistenceError, ValueError, LookupError) as exc:
            LOGGER.error("Job %s update failed: %s", self.job_id, exc)

    async def _capture_failure(self) -> None:
        if self.session is None or not debug_screenshots_enabled():
            return
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        try:
            await self.session.screenshot(Path("logs/screenshots") / f"job-{self.job_id}-failed-{stamp}.png")
        except Exception as exc:
            LOGGER.warning("Failure screenshot skipped: %s", exc)

    async def _cleanup(self) -> None:
        if self._cleaned_up:
            return
        self._cleaned_up = True
        if self.session is not None:
            try:
                await self.session.close()
            except Exception as exc:
                LOGGER.warning("Browser session close failed: %s", exc)
        stores = [self.product_store]
        if self.job_store is not self.product_store:
            stores.append(self.job_store)  # type: ignore[arg-type]
        for store in stores:
            close = getattr(store, "close", None)
            if close is None:
                continue
            try:
                close()
            except Exception as exc:
                LOGGER.warning("Store close failed: %s", exc)

    def _summary(self, status: str, error_message: str | None, *, deactivated: int = 0) -> CrawlSummary:
        return CrawlSummary(
            job_id=self.job_id,
            status=status,
            products_scraped=self.products_scraped,
            products_added=self.totals.added,
            products_updated=self.totals.updated,
            products_deactivated=deactivated,
            errors=self.totals.errors,
            prices_recorded=self.totals.prices_recorded,
            categories_processed=list(self.categories_processed),
            categories_failed=list(self.categories_failed),
            error_message=error_message,
            region=self.settings.region_code,
        )
