"""Category discovery from the storefront landing page."""

from __future__ import annotations

from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

import pantrywatch.selectors as selectors
from pantrywatch.config import CategoryRules, CrawlSettings
from pantrywatch.errors import NavigationTimeoutError
from pantrywatch.extractors.dom_utils import settle
from pantrywatch.extractors.schemas import Category
from pantrywatch.logging_config import get_logger
from pantrywatch.normalizers import clean_category_label, normalize_url

LOGGER = get_logger(__name__)


def match_target(name: str, targets: Iterable[str]) -> str | None:
    """Return the target matching *name* exactly or as a substring either way."""

    lowered = name.lower()
    fallback: str | None = None
    for target in targets:
        normalized = target.lower()
        if lowered == normalized:
            return target
        if fallback is None and (normalized in lowered or lowered in normalized):
            fallback = target
    return fallback


def _is_denied(name: str, rules: CategoryRules) -> bool:
    lowered = name.lower()
    if len(name) < rules.min_name_length:
        return True
    if lowered in rules.deny_labels:
        return True
    return any(fragment in lowered for fragment in rules.deny_fragments)


def _is_listing_link(href: str, *, domain: str, current_url: str, rules: CategoryRules) -> bool:
    lowered = href.lower()
    if not lowered or (urlparse(lowered).hostname or "") != domain.lower():
        return False
    if href == current_url:
        return False
    if rules.listing_suffix and rules.listing_suffix.lower() not in lowered:
        return False
    return not any(fragment in lowered for fragment in rules.link_exclude_fragments)


def select_categories(
    links: Iterable[Mapping[str, Any]],
    rules: CategoryRules,
    *,
    domain: str,
    current_url: str = "",
) -> list[Category]:
    """Filter raw ``{href, text}`` anchors down to the target categories.

    Keywords are applied in configuration order; the first keyword that claims a
    link wins.  The result is deduplicated by normalised URL and sorted by name.
    """

    anchors = [
        (str(link.get("href") or "").strip(), str(link.get("text") or "").strip())
        for link in links
    ]
    domain = domain.lower()
    found: list[Category] = []
    seen_urls: set[str] = set()

    for keyword in rules.keywords:
        for href, text in anchors:
            if not text or href in seen_urls:
                continue
            # Match the path only; the storefront host itself contains "deli".
            if keyword not in urlparse(href).path.lower() and keyword not in text.lower():
                continue
            if not _is_listing_link(href, domain=domain, current_url=current_url, rules=rules):
                continue

            name = clean_category_label(text)
            if not name or _is_denied(name, rules):
                continue
            canonical = match_target(name, rules.targets)
            if canonical is None:
                continue

            seen_urls.add(href)
            found.append(Category(name=name, url=href, keyword=keyword, canonical_name=canonical))

    unique: list[Category] = []
    normalized_seen: set[str] = set()
    for category in found:
        key = normalize_url(category.url)
        if key in normalized_seen:
            continue
        normalized_seen.add(key)
        unique.append(category)

    unique.sort(key=lambda item: item.name.lower())
    return unique


class CategoryDiscoverer:
    """Turn the landing page into the list of target categories."""

    def __init__(self, settings: CrawlSettings, rules: CategoryRules) -> None:
        self.settings = settings
        self.rules = rules

    async def discover(self, session: Any) -> list[Category]:
        landing_url = self.settings.landing_url
        LOGGER.info("Extracting categories from %s", landing_url)
        try:
            await session.navigate(landing_url, timeout_ms=self.settings.navigation_timeout_ms)
        except NavigationTimeoutError as exc:
            LOGGER.error("Landing page failed to load: %s", exc)
            return []
        await settle(self.settings.settle_delay_ms)

        try:
            links = await session.evaluate(selectors.ANCHOR_DUMP_SCRIPT)
        except Exception as exc:
            LOGGER.error("Failed to read landing page links: %s", exc)
            return []

        categories = select_categories(
            links or [],
            self.rules,
            domain=self.settings.domain,
            current_url=session.current_url,
        )
        LOGGER.info(
            "Found %d categories: %s",
            len(categories),
            ", ".join(category.name for category in categories) or "none",
        )
        return categories
