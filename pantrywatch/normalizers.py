"""Utility helpers for normalising scraped text values."""

from __future__ import annotations

import re

_RESULT_COUNT_RE = re.compile(r"\(\d+\)\s*results?", re.I)
_TRAILING_COUNT_RE = re.compile(r"\s*\(\d+\)\s*$")
_SCHEME_RE = re.compile(r"^https?://", re.I)
_WWW_RE = re.compile(r"^www\.", re.I)


def normalize_url(url: str) -> str:
    """Return *url* lower-cased without its scheme or ``www.`` prefix."""

    stripped = _SCHEME_RE.sub("", url.strip())
    stripped = _WWW_RE.sub("", stripped)
    return stripped.lower()


def clean_category_label(text: str | None) -> str:
    """Strip result-count annotations such as ``(56) results`` from a link label."""

    if not text:
        return ""
    label = _RESULT_COUNT_RE.sub("", text)
    label = _TRAILING_COUNT_RE.sub("", label)
    return " ".join(label.split())


def normalize_inventory_status(value: str | None) -> str | None:
    """Convert inventory status codes into human-readable labels."""

    if not value:
        return None

    trimmed = str(value).strip()
    if not trimmed:
        return None

    lowered = trimmed.lower()
    for prefix in ("http://schema.org/", "https://schema.org/"):
        if lowered.startswith(prefix):
            trimmed = trimmed[len(prefix) :]
            lowered = trimmed.lower()
            break

    mapped = {
        "instock": "In Stock",
        "in stock": "In Stock",
        "outofstock": "Out of Stock",
        "out of stock": "Out of Stock",
        "soldout": "Sold Out",
        "limitedavailability": "Limited",
        "limited": "Limited",
    }

    return mapped.get(lowered, trimmed)


__all__ = ["clean_category_label", "normalize_inventory_status", "normalize_url"]
