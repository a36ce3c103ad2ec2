"""Configuration loading for the crawler.

Defaults live in :data:`DEFAULT_CONFIG`; a YAML file is deep-merged on top and a
handful of environment variables override the result.  Components receive the
typed :class:`CrawlSettings` / :class:`CategoryRules` views rather than the raw
dictionary.
"""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

import yaml

from pantrywatch.logging_config import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yml")

DEFAULT_CONFIG: dict[str, Any] = {
    "storefront": {
        "base_url": "https://www.costcobusinessdelivery.com/",
        "landing_path": "grocery",
    },
    "crawl": {
        "region_code": "80031",
        "settle_delay_ms": 2000,
        "product_delay_ms": 1000,
        "category_delay_ms": 1000,
        "max_pages_per_category": 5,
        "max_products_per_category": 200,
        "batch_size": 10,
        "navigation_timeout_ms": 30000,
        "pagination_timeout_ms": 15000,
        "reload_timeout_ms": 15000,
        "modal_timeout_ms": 5000,
        "job_timeout_s": 600,
        "deactivate_missing": False,
        "fallback_category": "Grocery",
    },
    "output": {
        "database_url": "sqlite:///pantrywatch.sqlite",
    },
    "schedule": {"minutes": 360},
    "categories": {
        "targets": [
            "Baking",
            "Breads & Bakery",
            "Canned & Jarred Foods",
            "Cereal & Breakfast",
            "Dairy & Eggs",
            "Deli",
            "Fresh Produce",
            "Frozen Foods",
            "Meat & Seafood",
            "Pantry & Dry Goods",
            "Soups, Broth & Chili",
        ],
        "keywords": {
            "baking": "Baking",
            "bread": "Breads & Bakery",
            "bakery": "Breads & Bakery",
            "canned": "Canned & Jarred Foods",
            "jarred": "Canned & Jarred Foods",
            "cereal": "Cereal & Breakfast",
            "breakfast": "Cereal & Breakfast",
            "dairy": "Dairy & Eggs",
            "eggs": "Dairy & Eggs",
            "deli": "Deli",
            "produce": "Fresh Produce",
            "frozen": "Frozen Foods",
            "meat": "Meat & Seafood",
            "seafood": "Meat & Seafood",
            "pantry": "Pantry & Dry Goods",
            "dry goods": "Pantry & Dry Goods",
            "soup": "Soups, Broth & Chili",
            "broth": "Soups, Broth & Chili",
            "chili": "Soups, Broth & Chili",
        },
        "deny_labels": [
            "all",
            "home",
            "search",
            "filter",
            "clear",
            "reset",
            "brand",
            "category",
            "price",
            "dietary features",
            "quality grade",
            "warehouse only",
            "what's new",
            "company information",
            "contact us",
            "credit card",
            "customer service",
            "general information",
            "get email offers",
            "savings",
            "savings events",
            "skip to main content",
            "skip to results",
            "united states",
            "volume sales",
            "warehouse supply list",
            "buying guide",
            "dental hygiene",
            "first aid",
            "medicines & treatments",
            "gift cards",
            "health & beauty",
        ],
        "deny_fragments": ["skip", "information", "service", "card"],
        "link_exclude_fragments": ["#", "collapse", "criteo.com"],
        "listing_suffix": ".html",
        "min_name_length": 3,
    },
}

_ENV_OVERRIDES: tuple[tuple[str, tuple[str, str], type], ...] = (
    ("PANTRYWATCH_REGION_CODE", ("crawl", "region_code"), str),
    ("SCRAPE_DELAY_MS", ("crawl", "settle_delay_ms"), int),
    ("PANTRYWATCH_JOB_TIMEOUT_S", ("crawl", "job_timeout_s"), float),
    ("DATABASE_URL", ("output", "database_url"), str),
)


def _deep_merge(default: Any, override: Any) -> Any:
    if not isinstance(default, dict) or not isinstance(override, dict):
        return deepcopy(override)

    merged: dict[str, Any] = deepcopy(default)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _apply_env_overrides(config: dict[str, Any]) -> None:
    for env_name, (section, key), caster in _ENV_OVERRIDES:
        raw = os.getenv(env_name)
        if raw is None or not raw.strip():
            continue
        try:
            value = caster(raw.strip())
        except ValueError:
            LOGGER.warning("Ignoring invalid %s=%r", env_name, raw)
            continue
        config.setdefault(section, {})[key] = value


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load the YAML config at *path* merged over the defaults."""

    path = path or DEFAULT_CONFIG_PATH
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    else:
        LOGGER.warning("Configuration file %s not found; using defaults", path)
        data = {}

    merged = _deep_merge(DEFAULT_CONFIG, data) if data else deepcopy(DEFAULT_CONFIG)
    _apply_env_overrides(merged)
    return merged


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _non_negative_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(number, 0)


@dataclass(frozen=True)
class CategoryRules:
    """Externally supplied rules used to recognise target categories."""

    targets: tuple[str, ...]
    keywords: dict[str, str] = field(default_factory=dict)
    deny_labels: frozenset[str] = frozenset()
    deny_fragments: tuple[str, ...] = ()
    link_exclude_fragments: tuple[str, ...] = ()
    listing_suffix: str = ".html"
    min_name_length: int = 3

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "CategoryRules":
        section = config.get("categories") or {}
        raw_keywords = section.get("keywords") or {}
        if isinstance(raw_keywords, (list, tuple)):
            # A bare keyword list is allowed; such keywords map to no canonical name.
            raw_keywords = {str(keyword): "" for keyword in raw_keywords}
        keywords = {
            str(keyword).strip().lower(): str(name or "").strip()
            for keyword, name in raw_keywords.items()
            if str(keyword).strip()
        }
        return cls(
            targets=tuple(str(t).strip() for t in section.get("targets") or [] if str(t).strip()),
            keywords=keywords,
            deny_labels=frozenset(str(label).strip().lower() for label in section.get("deny_labels") or []),
            deny_fragments=tuple(str(f).lower() for f in section.get("deny_fragments") or [] if str(f)),
            link_exclude_fragments=tuple(
                str(f).lower() for f in section.get("link_exclude_fragments") or [] if str(f)
            ),
            listing_suffix=str(section.get("listing_suffix") or ""),
            min_name_length=_non_negative_int(section.get("min_name_length"), 3),
        )


@dataclass(frozen=True)
class CrawlSettings:
    """Typed view over the crawl-related configuration."""

    base_url: str = "https://www.costcobusinessdelivery.com/"
    landing_path: str = "grocery"
    region_code: str = "80031"
    settle_delay_ms: int = 2000
    product_delay_ms: int = 1000
    category_delay_ms: int = 1000
    max_pages_per_category: int = 5
    max_products_per_category: int = 200
    batch_size: int = 10
    navigation_timeout_ms: int = 30000
    pagination_timeout_ms: int = 15000
    reload_timeout_ms: int = 15000
    modal_timeout_ms: int = 5000
    job_timeout_s: float = 600.0
    deactivate_missing: bool = False
    fallback_category: str = "Grocery"
    database_url: str = "sqlite:///pantrywatch.sqlite"

    @property
    def landing_url(self) -> str:
        return urljoin(self.base_url, self.landing_path)

    @property
    def domain(self) -> str:
        return (urlparse(self.base_url).hostname or "").lower()

    @property
    def origin(self) -> str:
        parsed = urlparse(self.base_url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "CrawlSettings":
        storefront = config.get("storefront") or {}
        crawl = config.get("crawl") or {}
        output = config.get("output") or {}
        defaults = cls()
        try:
            job_timeout = float(crawl.get("job_timeout_s", defaults.job_timeout_s))
        except (TypeError, ValueError):
            job_timeout = defaults.job_timeout_s
        return cls(
            base_url=str(storefront.get("base_url") or defaults.base_url),
            landing_path=str(storefront.get("landing_path") or ""),
            region_code=str(crawl.get("region_code") or defaults.region_code).strip(),
            settle_delay_ms=_non_negative_int(crawl.get("settle_delay_ms"), defaults.settle_delay_ms),
            product_delay_ms=_non_negative_int(crawl.get("product_delay_ms"), defaults.product_delay_ms),
            category_delay_ms=_non_negative_int(crawl.get("category_delay_ms"), defaults.category_delay_ms),
            max_pages_per_category=_positive_int(
                crawl.get("max_pages_per_category"), defaults.max_pages_per_category
            ),
            max_products_per_category=_positive_int(
                crawl.get("max_products_per_category"), defaults.max_products_per_category
            ),
            batch_size=_positive_int(crawl.get("batch_size"), defaults.batch_size),
            navigation_timeout_ms=_positive_int(
                crawl.get("navigation_timeout_ms"), defaults.navigation_timeout_ms
            ),
            pagination_timeout_ms=_positive_int(
                crawl.get("pagination_timeout_ms"), defaults.pagination_timeout_ms
            ),
            reload_timeout_ms=_positive_int(crawl.get("reload_timeout_ms"), defaults.reload_timeout_ms),
            modal_timeout_ms=_positive_int(crawl.get("modal_timeout_ms"), defaults.modal_timeout_ms),
            job_timeout_s=job_timeout if job_timeout > 0 else defaults.job_timeout_s,
            deactivate_missing=bool(crawl.get("deactivate_missing", False)),
            fallback_category=str(crawl.get("fallback_category") or defaults.fallback_category),
            database_url=str(output.get("database_url") or defaults.database_url),
        )
