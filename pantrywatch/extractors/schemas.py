"""Data validation schemas for extracted records."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


_PRICE_PATTERN = re.compile(r"(?P<number>-?\d{1,3}(?:,\d{3})*(?:\.\d+)?|-?\d*\.\d+|-?\d+)")


def parse_price(value: Any) -> float | None:
    """Parse a price-like value into a positive float.

    Numbers are accepted as-is; strings have the first decimal number extracted,
    allowing for currency symbols, commas, and whitespace.  Returns ``None``
    when no positive number is present.
    """

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        match = _PRICE_PATTERN.search(text)
        if not match:
            return None
        try:
            number = float(match.group("number").replace(",", ""))
        except (TypeError, ValueError):
            return None

    if number != number or number <= 0:
        return None
    return number


class Category(BaseModel):
    """A target category discovered on the storefront landing page."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    keyword: str = ""
    canonical_name: str | None = None


class ProductRecord(BaseModel):
    """A validated product extracted from a detail page."""

    model_config = ConfigDict(extra="ignore")

    external_id: str
    name: str
    url: str
    category: str
    price: float = Field(gt=0)
    sku: str | None = None
    inventory_status: str | None = None
    membership_required: bool = False
    price_per_unit: str | None = None

    @field_validator("external_id", "name", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("must be a non-empty string")
        return text

    @field_validator("sku", "inventory_status", "price_per_unit", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None
