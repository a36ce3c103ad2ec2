"""Delivery-region bootstrap for the storefront session.

Catalog prices and availability depend on the delivery ZIP code, so the crawl
may only start once the page itself displays the target region.  The modal
interaction is modelled as a small state machine: the keyboard submission is
tried first and a click on the modal's submit control is the only fallback.
There is no cookie-based shortcut and no retry loop; any failure is fatal.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import pantrywatch.selectors as selectors
from pantrywatch.config import CrawlSettings
from pantrywatch.errors import NavigationTimeoutError, RegionBootstrapError
from pantrywatch.extractors.dom_utils import human_wait, settle
from pantrywatch.logging_config import get_logger
from pantrywatch.playwright_env import debug_screenshots_enabled

LOGGER = get_logger(__name__)

SCREENSHOT_DIR = Path("logs/screenshots")


class BootstrapState(str, Enum):
    IDLE = "idle"
    CONTROL_LOCATED = "control_located"
    FIELD_FILLED = "field_filled"
    SUBMITTED_VIA_KEYBOARD = "submitted_via_keyboard"
    SUBMITTED_VIA_BUTTON = "submitted_via_button"
    VERIFIED = "verified"
    FAILED = "failed"


_TRANSITIONS: dict[BootstrapState, frozenset[BootstrapState]] = {
    BootstrapState.IDLE: frozenset({BootstrapState.CONTROL_LOCATED, BootstrapState.FAILED}),
    BootstrapState.CONTROL_LOCATED: frozenset({BootstrapState.FIELD_FILLED, BootstrapState.FAILED}),
    BootstrapState.FIELD_FILLED: frozenset({BootstrapState.SUBMITTED_VIA_KEYBOARD, BootstrapState.FAILED}),
    BootstrapState.SUBMITTED_VIA_KEYBOARD: frozenset(
        {BootstrapState.VERIFIED, BootstrapState.SUBMITTED_VIA_BUTTON, BootstrapState.FAILED}
    ),
    BootstrapState.SUBMITTED_VIA_BUTTON: frozenset({BootstrapState.VERIFIED, BootstrapState.FAILED}),
    BootstrapState.VERIFIED: frozenset(),
    BootstrapState.FAILED: frozenset(),
}


def displayed_regions(page_text: str, marker_pattern: str = selectors.REGION_MARKER_PATTERN) -> list[str]:
    """Return every region code the page currently displays via the marker."""

    return re.findall(marker_pattern, page_text or "")


class RegionBootstrapper:
    """Set the session's delivery region and verify the page reflects it."""

    def __init__(
        self,
        settings: CrawlSettings,
        *,
        marker_pattern: str = selectors.REGION_MARKER_PATTERN,
        input_selector: str = selectors.REGION_INPUT,
    ) -> None:
        self.settings = settings
        self.region_code = settings.region_code
        self.marker_pattern = marker_pattern
        self.input_selector = input_selector
        self.state = BootstrapState.IDLE
        self.history: list[BootstrapState] = [BootstrapState.IDLE]
        self.failure_reason: str | None = None

    def _transition(self, target: BootstrapState) -> None:
        allowed = _TRANSITIONS[self.state]
        if target not in allowed:
            raise RuntimeError(f"Illegal bootstrap transition {self.state.value} -> {target.value}")
        LOGGER.debug("Region bootstrap %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    async def _fail(self, session: Any, reason: str) -> RegionBootstrapError:
        self.failure_reason = reason
        if self.state is not BootstrapState.FAILED:
            self._transition(BootstrapState.FAILED)
        LOGGER.error("Region bootstrap failed: %s", reason, extra={"region": self.region_code})
        if debug_screenshots_enabled():
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
            try:
                await session.screenshot(SCREENSHOT_DIR / f"region-{self.state.value}-{stamp}.png")
            except Exception as exc:
                LOGGER.warning("Region failure screenshot skipped: %s", exc)
        return RegionBootstrapError(
            f"Region bootstrap failed: {reason}",
            url=self.settings.base_url,
            region=self.region_code,
        )

    async def verify(self, session: Any) -> bool:
        text = await session.current_text()
        shown = displayed_regions(text, self.marker_pattern)
        LOGGER.info(
            "Region check | target=%s | displayed=%s",
            self.region_code,
            shown[0] if shown else "not found",
        )
        return self.region_code in shown

    async def run(self, session: Any) -> str:
        """Drive the region modal and return the verified region code."""

        LOGGER.info("Setting delivery region via UI to %s", self.region_code)
        try:
            await session.navigate(
                self.settings.base_url,
                timeout_ms=self.settings.navigation_timeout_ms,
            )
        except NavigationTimeoutError as exc:
            raise await self._fail(session, "storefront did not load") from exc
        await settle(self.settings.settle_delay_ms)

        try:
            control = await session.evaluate(
                selectors.FIND_REGION_CONTROL_SCRIPT,
                [selectors.REGION_CHANGE_WORD, list(selectors.REGION_CHANGE_CONTEXT)],
            )
        except Exception as exc:
            raise await self._fail(session, "region control scan failed") from exc
        if not control or not control.get("found"):
            raise await self._fail(session, "no region change control on the page")
        LOGGER.info(
            "Found region control: %s - %r",
            control.get("tagName"),
            control.get("text"),
        )
        self._transition(BootstrapState.CONTROL_LOCATED)

        try:
            trigger = await session.evaluate(
                selectors.TRIGGER_REGION_CONTROL_SCRIPT,
                [
                    selectors.REGION_MODAL_OPENER,
                    selectors.REGION_CHANGE_WORD,
                    list(selectors.REGION_CHANGE_CONTEXT),
                ],
            )
        except Exception as exc:
            raise await self._fail(session, "region control could not be triggered") from exc
        if not trigger:
            raise await self._fail(session, "region control could not be triggered")
        LOGGER.info("Region modal opened via %s trigger", trigger)

        if not await session.wait_for_visible(self.input_selector, timeout_ms=self.settings.modal_timeout_ms):
            raise await self._fail(session, "region input never became visible")

        try:
            await session.evaluate(selectors.CLEAR_INPUT_SCRIPT, self.input_selector)
            await session.type_into(self.input_selector, self.region_code)
            entered = await session.evaluate(selectors.INPUT_VALUE_SCRIPT, self.input_selector)
        except Exception as exc:
            raise await self._fail(session, "region input could not be filled") from exc
        if (entered or "").strip() != self.region_code:
            raise await self._fail(
                session,
                f"region input holds {entered!r} instead of {self.region_code!r}",
            )
        self._transition(BootstrapState.FIELD_FILLED)

        await human_wait(300, 700)
        try:
            await session.press(self.input_selector, "Enter")
        except Exception as exc:
            LOGGER.warning("Keyboard submission raised: %s", exc)
        self._transition(BootstrapState.SUBMITTED_VIA_KEYBOARD)
        await settle(self.settings.settle_delay_ms)
        if await self.verify(session):
            return self._verified()

        LOGGER.info("Keyboard submission did not apply the region; trying the submit control")
        try:
            clicked = await session.evaluate(
                selectors.CLICK_REGION_SUBMIT_SCRIPT,
                selectors.REGION_SUBMIT_TEXT,
            )
        except Exception as exc:
            raise await self._fail(session, "submit control click failed") from exc
        if not clicked:
            raise await self._fail(session, "no visible region submit control")
        LOGGER.info("Clicked region submit control: %r", clicked)
        self._transition(BootstrapState.SUBMITTED_VIA_BUTTON)
        await settle(self.settings.settle_delay_ms)
        if await self.verify(session):
            return self._verified()

        try:
            modal_open = await session.evaluate(selectors.MODAL_OPEN_SCRIPT, selectors.REGION_MODAL)
        except Exception:
            modal_open = True
        if not modal_open:
            # The modal may close before the header re-renders.
            await settle(self.settings.settle_delay_ms)
            if await self.verify(session):
                return self._verified()

        raise await self._fail(session, "page does not display the target region after both submissions")

    def _verified(self) -> str:
        self._transition(BootstrapState.VERIFIED)
        LOGGER.info("Delivery region set to %s", self.region_code, extra={"region": self.region_code})
        return self.region_code
