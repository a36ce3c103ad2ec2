"""Browser launch settings resolved from ``PANTRYWATCH_*`` environment variables.

Everything here is read lazily so tests and the CLI can flip variables between
runs. Only ``headless_enabled`` and the stealth instance are cached, because the
browser is launched once per crawl job.
"""

from __future__ import annotations

import os
import shlex
from functools import lru_cache
from typing import Any, Callable, TypeVar

from playwright.async_api import Browser, BrowserContext, Playwright

from pantrywatch.logging_config import get_logger

LOGGER = get_logger(__name__)

ENV_PREFIX = "PANTRYWATCH_"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Container hosts run Chromium as root without a usable /dev/shm.
BASE_CHROMIUM_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--lang=en-US",
    "--window-size=1440,960",
)

VIEWPORT = {"width": 1440, "height": 900}

T = TypeVar("T")


def _setting(key: str) -> str | None:
    value = os.getenv(ENV_PREFIX + key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _typed_setting(key: str, cast: Callable[[str], T], default: T) -> T:
    raw = _setting(key)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        LOGGER.debug("Ignoring malformed %s%s=%r", ENV_PREFIX, key, raw)
        return default


def _flag(key: str, default: bool) -> bool:
    raw = _setting(key)
    if raw is None:
        return default
    return raw.lower() not in {"0", "false", "no", "off"}


@lru_cache(maxsize=1)
def headless_enabled() -> bool:
    return _flag("HEADLESS", True)


def preflight_skipped() -> bool:
    """True when ``PANTRYWATCH_SKIP_PREFLIGHT=1`` asks the CLI to skip reachability checks."""

    return _setting("SKIP_PREFLIGHT") == "1"


def stealth_enabled() -> bool:
    return _flag("STEALTH", True)


def debug_screenshots_enabled() -> bool:
    """Failure screenshots are opt-in; they land in the working directory."""

    return _flag("DEBUG_SCREENSHOTS", False)


def resolve_user_agent() -> str:
    # USER_AGENT is unprefixed so it can be shared with the preflight HTTP probe.
    return (os.getenv("USER_AGENT") or "").strip() or DEFAULT_USER_AGENT


def _languages() -> tuple[str, ...]:
    raw = _setting("LANGS") or "en-US,en"
    langs = tuple(part.strip() for part in raw.split(",") if part.strip())
    return langs[:2] or ("en-US", "en")


@lru_cache(maxsize=1)
def _stealth_instance():
    if not stealth_enabled():
        return None
    from playwright_stealth import Stealth

    return Stealth(
        navigator_languages_override=_languages(),
        navigator_platform_override=_setting("PLATFORM") or "MacIntel",
        navigator_user_agent_override=resolve_user_agent(),
        navigator_vendor_override=_setting("VENDOR") or "Google Inc.",
    )


def apply_stealth(playwright: Playwright) -> None:
    """Install stealth evasions on every context the given Playwright creates."""

    stealth = _stealth_instance()
    if stealth is None:
        return
    try:
        stealth.hook_playwright_context(playwright)
    except Exception as exc:
        # Playwright internals change between releases.
        LOGGER.warning("Stealth hook could not be installed: %s", exc)


def proxy_settings() -> dict[str, str] | None:
    server = _setting("PROXY")
    if server is None:
        return None
    if "://" not in server:
        server = f"http://{server}"
    return {"server": server}


def launch_kwargs() -> dict[str, Any]:
    """Keyword arguments for ``chromium.launch``."""

    args = list(BASE_CHROMIUM_ARGS)
    args.extend(shlex.split(_setting("CHROMIUM_ARGS") or ""))
    kwargs: dict[str, Any] = {"headless": headless_enabled(), "args": args}

    optional = {
        "channel": _setting("BROWSER_CHANNEL"),
        "proxy": proxy_settings(),
        "slow_mo": _typed_setting("SLOW_MO_MS", int, 0) or None,
    }
    kwargs.update({key: value for key, value in optional.items() if value})
    if kwargs.get("slow_mo", 0) < 0:
        kwargs.pop("slow_mo")
    return kwargs


def context_kwargs() -> dict[str, Any]:
    """Keyword arguments for ``browser.new_context``."""

    return {
        "viewport": dict(VIEWPORT),
        "user_agent": resolve_user_agent(),
        "ignore_https_errors": _flag("IGNORE_HTTPS_ERRORS", False),
    }


async def launch_browser(playwright: Playwright) -> tuple[Browser, BrowserContext]:
    browser = await playwright.chromium.launch(**launch_kwargs())
    try:
        context = await browser.new_context(**context_kwargs())
    except Exception:
        await browser.close()
        raise
    return browser, context


async def close_browser(browser: Browser | None, context: BrowserContext | None) -> None:
    """Close the context then the browser. Failures are logged, never raised."""

    for label, target in (("context", context), ("browser", browser)):
        if target is None:
            continue
        try:
            await target.close()
        except Exception as exc:
            LOGGER.debug("Closing %s failed: %s", label, exc)


def wait_multiplier() -> float:
    return max(_typed_setting("WAIT_MULTIPLIER", float, 1.0), 0.0)


def apply_wait_policy(min_ms: int, max_ms: int) -> tuple[int, int]:
    """Scale pacing bounds by ``PANTRYWATCH_WAIT_MULTIPLIER``; negatives clamp to zero."""

    factor = wait_multiplier()
    low = int(min_ms * factor)
    return low, max(low, int(max_ms * factor))
