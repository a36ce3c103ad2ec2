"""Product detail page extraction."""

from __future__ import annotations

import re
from typing import Any, Mapping

from pydantic import ValidationError

import pantrywatch.selectors as selectors
from pantrywatch.config import CrawlSettings
from pantrywatch.errors import NavigationTimeoutError
from pantrywatch.extractors.dom_utils import settle
from pantrywatch.extractors.schemas import ProductRecord, parse_price
from pantrywatch.logging_config import get_logger
from pantrywatch.normalizers import normalize_inventory_status

LOGGER = get_logger(__name__)

_URL_ID_RE = re.compile(r"\.product\.(\d+)\.html")


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, "", 0, "0"):
            return value
    return None


def product_id_from_url(url: str) -> str | None:
    match = _URL_ID_RE.search(url or "")
    return match.group(1) if match else None


def record_from_payload(
    payload: Mapping[str, Any] | None,
    url: str,
    category: str,
) -> ProductRecord | None:
    """Map the embedded analytics payload to a :class:`ProductRecord`.

    Returns ``None`` when the payload lacks a name, a positive price or any
    usable identifier.
    """

    if not isinstance(payload, Mapping):
        return None

    price = parse_price(_first_present(payload, "priceMin", "priceMax"))
    external_id = _first_present(payload, "pid", "id") or product_id_from_url(url)
    if price is None or external_id is None:
        return None

    try:
        return ProductRecord(
            external_id=str(external_id),
            name=payload.get("name"),
            url=url,
            category=category,
            price=price,
            sku=_first_present(payload, "sku", "itemNumber"),
            inventory_status=normalize_inventory_status(payload.get("inventoryStatus")),
            membership_required=payload.get("membershipReq") == selectors.MEMBER_ONLY_FLAG,
            price_per_unit=payload.get("pricePerUnit"),
        )
    except ValidationError:
        return None


class DetailExtractor:
    """Visit one product page and return its validated record, or ``None``."""

    def __init__(self, settings: CrawlSettings) -> None:
        self.settings = settings
        self.navigation_failures = 0

    async def _recover(self, session: Any) -> None:
        try:
            await session.reload(timeout_ms=self.settings.reload_timeout_ms)
        except NavigationTimeoutError:
            LOGGER.warning("Failed to reload page after error; continuing with next product")
            return
        await settle(self.settings.settle_delay_ms)

    async def extract(self, session: Any, url: str, category: str) -> ProductRecord | None:
        try:
            await session.navigate(url, timeout_ms=self.settings.navigation_timeout_ms)
        except NavigationTimeoutError as exc:
            self.navigation_failures += 1
            LOGGER.error(
                "Failed to load product page: %s",
                exc,
                extra={"url": url, "category": category},
            )
            await self._recover(session)
            return None

        await settle(self.settings.settle_delay_ms)

        try:
            payload = await session.evaluate(selectors.PRODUCT_DATA_SCRIPT, selectors.PRODUCT_DATA_PATH)
        except Exception as exc:
            LOGGER.debug("Product data read failed for %s: %s", url, exc)
            return None

        record = record_from_payload(payload, session.current_url or url, category)
        if record is None:
            LOGGER.debug("No product data on %s", url, extra={"category": category})
        return record
