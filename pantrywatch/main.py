"""Command-line entry point for the pantrywatch crawler."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable

import requests
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from dotenv import load_dotenv

from pantrywatch.config import CategoryRules, CrawlSettings, load_config
from pantrywatch.logging_config import get_logger
from pantrywatch.orchestrator import CrawlOrchestrator, CrawlSummary
from pantrywatch.playwright_env import preflight_skipped, resolve_user_agent
from pantrywatch.storage import db
from pantrywatch.storage.store import SqlStore

LOGGER = get_logger(__name__)

DEFAULT_INTERVAL_MINUTES = 360


class PreflightError(RuntimeError):
    """Raised when environment prerequisites for a crawl are missing."""


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw}")
    return value


def _zip_code(raw: str) -> str:
    value = raw.strip()
    if not value.isdigit():
        raise argparse.ArgumentTypeError(f"region must be a numeric ZIP code, got {raw!r}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pantrywatch",
        description="Crawl the storefront grocery catalog and record price history.",
    )
    run = parser.add_argument_group("crawl")
    run.add_argument("--once", action="store_true", help="run one crawl job and exit")
    run.add_argument("--category", help="crawl only this discovered category (implies --once)")
    run.add_argument("--region", type=_zip_code, help="delivery ZIP code overriding the config")
    run.add_argument("--max-pages", type=_positive_int, help="listing page cap per category")
    run.add_argument("--max-products", type=_positive_int, help="detail page cap per category")
    run.add_argument("--skip-preflight", action="store_true", help="skip network and database checks")

    admin = parser.add_argument_group("maintenance")
    admin.add_argument("--config", type=Path, help="YAML configuration file")
    admin.add_argument("--status", action="store_true", help="print the latest crawl job as JSON")
    admin.add_argument("--init-db", action="store_true", help="create missing tables and exit")
    return parser


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    args.category = (args.category or "").strip() or None
    if args.category:
        args.once = True
    return args


def build_settings(args: argparse.Namespace, config: dict[str, Any]) -> CrawlSettings:
    """Apply CLI overrides on top of the file and environment configuration."""

    overrides = {
        field: value
        for field, value in (
            ("region_code", args.region),
            ("max_pages_per_category", args.max_pages),
            ("max_products_per_category", args.max_products),
        )
        if value
    }
    return replace(CrawlSettings.from_config(config), **overrides)


def _probe_storefront(settings: CrawlSettings) -> str | None:
    try:
        response = requests.get(settings.base_url, timeout=5, headers={"User-Agent": resolve_user_agent()})
    except requests.RequestException as exc:
        return f"storefront {settings.base_url} unreachable ({exc})"
    if not response.ok:
        return f"storefront {settings.base_url} answered HTTP {response.status_code}"
    return None


def _probe_database(settings: CrawlSettings) -> str | None:
    try:
        engine = db.get_engine(settings.database_url)
    except Exception as exc:
        return f"database URL {settings.database_url} rejected ({exc})"
    try:
        db.check_connection(engine)
    except Exception as exc:
        return f"database {settings.database_url} unusable ({exc})"
    finally:
        engine.dispose()
    return None


def _probe_interpreter(settings: CrawlSettings) -> str | None:
    if sys.version_info < (3, 10):
        return "Python 3.10+ required, running %d.%d" % sys.version_info[:2]
    return None


def preflight_check(settings: CrawlSettings) -> None:
    """Raise PreflightError listing every failed prerequisite."""

    problems = [
        message
        for probe in (_probe_interpreter, _probe_database, _probe_storefront)
        if (message := probe(settings))
    ]
    if problems:
        raise PreflightError("; ".join(problems))


async def run_job(
    settings: CrawlSettings,
    rules: CategoryRules,
    *,
    category: str | None = None,
) -> CrawlSummary:
    store = SqlStore.from_url(settings.database_url)
    orchestrator = CrawlOrchestrator(
        settings,
        rules,
        job_store=store,
        product_store=store,
    )
    return await orchestrator.run(category=category)


def show_status(settings: CrawlSettings) -> dict[str, Any] | None:
    store = SqlStore.from_url(settings.database_url)
    try:
        return store.get_latest_job()
    finally:
        store.close()


def schedule_interval(config: dict[str, Any]) -> int:
    """Minutes between scheduled crawls; non-positive or malformed values use the default."""

    raw = (config.get("schedule") or {}).get("minutes")
    try:
        minutes = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_INTERVAL_MINUTES
    return minutes if minutes > 0 else DEFAULT_INTERVAL_MINUTES


async def run_forever(settings: CrawlSettings, rules: CategoryRules, *, minutes: int, preflight: bool) -> None:
    """Crawl now, then every *minutes* until cancelled. Overlapping cycles are skipped."""

    async def cycle() -> None:
        if preflight:
            try:
                preflight_check(settings)
            except PreflightError as exc:
                LOGGER.error("Skipping crawl cycle, preflight failed: %s", exc)
                return
        try:
            await run_job(settings, rules)
        except Exception:
            LOGGER.exception("Crawl cycle aborted")

    scheduler = AsyncIOScheduler()
    scheduler.add_job(cycle, "interval", minutes=minutes, max_instances=1, coalesce=True)
    scheduler.start()
    LOGGER.info("Crawling every %d minutes", minutes)
    try:
        await cycle()
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        LOGGER.info("Scheduler stopped")


async def _async_main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    load_dotenv()

    config = load_config(args.config)
    settings = build_settings(args, config)
    rules = CategoryRules.from_config(config)
    LOGGER.debug(
        "Settings: region=%s max_pages=%s max_products=%s database=%s",
        settings.region_code,
        settings.max_pages_per_category,
        settings.max_products_per_category,
        settings.database_url,
    )

    if args.init_db:
        engine = db.get_engine(settings.database_url)
        try:
            db.init_db_safe(engine)
        finally:
            engine.dispose()
        LOGGER.info("Schema created at %s", settings.database_url)
        return 0

    if args.status:
        latest = show_status(settings)
        print(json.dumps(latest, indent=2) if latest else "No crawl jobs recorded.")
        return 0

    preflight = not (args.skip_preflight or preflight_skipped())
    if not args.once:
        await run_forever(settings, rules, minutes=schedule_interval(config), preflight=preflight)
        return 0

    if preflight:
        preflight_check(settings)
    summary = await run_job(settings, rules, category=args.category)
    return 0 if summary.succeeded else 1


def main() -> None:
    try:
        code = asyncio.run(_async_main())
    except PreflightError as exc:
        LOGGER.error("Not starting: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:  # pragma: no cover
        LOGGER.info("Stopped by keyboard interrupt")
        code = 0
    raise SystemExit(code)


if __name__ == "__main__":
    main()
