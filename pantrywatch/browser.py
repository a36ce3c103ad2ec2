"""Browsing-session surface used by every crawl phase.

``BrowserSession`` wraps one Playwright page for the lifetime of a crawl job.
Navigation failures surface as :class:`NavigationTimeoutError`; everything else
is a thin pass-through so that tests can substitute a fake session with the
same method names.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from pantrywatch.errors import NavigationTimeoutError
from pantrywatch.logging_config import get_logger
from pantrywatch.playwright_env import apply_stealth, close_browser, launch_browser

LOGGER = get_logger(__name__)

DEFAULT_WAIT_UNTIL = "networkidle"


class BrowserSession:
    """A single reusable page plus the browser resources that own it."""

    def __init__(
        self,
        page: Any,
        *,
        browser: Any | None = None,
        context: Any | None = None,
        playwright_manager: Any | None = None,
    ) -> None:
        self.page = page
        self._browser = browser
        self._context = context
        self._playwright_manager = playwright_manager
        self.closed = False

    @classmethod
    async def launch(cls) -> "BrowserSession":
        """Start Playwright, launch Chromium and open the crawl page."""

        playwright = await async_playwright().start()
        try:
            apply_stealth(playwright)
            browser, context = await launch_browser(playwright)
            page = await context.new_page()
        except Exception:
            await playwright.stop()
            raise
        LOGGER.info("Browser session started")
        return cls(page, browser=browser, context=context, playwright_manager=playwright)

    @property
    def current_url(self) -> str:
        return self.page.url

    async def navigate(
        self,
        url: str,
        *,
        wait_until: str = DEFAULT_WAIT_UNTIL,
        timeout_ms: int = 30000,
    ) -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except (PlaywrightTimeoutError, PlaywrightError) as exc:
            raise NavigationTimeoutError(str(exc).splitlines()[0] if str(exc) else None, url=url) from exc

    async def reload(self, *, wait_until: str = DEFAULT_WAIT_UNTIL, timeout_ms: int = 15000) -> None:
        try:
            await self.page.reload(wait_until=wait_until, timeout=timeout_ms)
        except (PlaywrightTimeoutError, PlaywrightError) as exc:
            raise NavigationTimeoutError("Reload failed", url=self.current_url) from exc

    async def click_and_wait_for_navigation(
        self,
        selector: str,
        *,
        wait_until: str = "domcontentloaded",
        timeout_ms: int = 15000,
        click_timeout_ms: int = 5000,
    ) -> None:
        """Click *selector* and wait for the document it loads.

        The navigation listener is armed before the click so a fast page swap
        is not missed. A failed click propagates the Playwright error; a
        navigation that never completes raises :class:`NavigationTimeoutError`.
        """

        clicked = False
        try:
            async with self.page.expect_navigation(wait_until=wait_until, timeout=timeout_ms):
                await self.page.locator(selector).first.click(timeout=click_timeout_ms)
                clicked = True
        except (PlaywrightTimeoutError, PlaywrightError) as exc:
            if not clicked:
                raise
            raise NavigationTimeoutError("Navigation after click did not complete", url=self.current_url) from exc

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def click(self, selector: str, *, timeout_ms: int = 5000) -> None:
        await self.page.locator(selector).first.click(timeout=timeout_ms)

    async def type_into(self, selector: str, text: str, *, timeout_ms: int = 5000) -> None:
        locator = self.page.locator(selector).first
        await locator.click(timeout=timeout_ms)
        await locator.press_sequentially(text, timeout=timeout_ms)

    async def press(self, selector: str, key: str, *, timeout_ms: int = 5000) -> None:
        locator = self.page.locator(selector).first
        await locator.focus(timeout=timeout_ms)
        await locator.press(key, timeout=timeout_ms)

    async def wait_for_visible(self, selector: str, *, timeout_ms: int = 5000) -> bool:
        try:
            await self.page.locator(selector).first.wait_for(state="visible", timeout=timeout_ms)
        except (PlaywrightTimeoutError, PlaywrightError):
            return False
        return True

    async def current_text(self) -> str:
        try:
            return await self.page.inner_text("body", timeout=5000)
        except (PlaywrightTimeoutError, PlaywrightError):
            return ""

    async def screenshot(self, path: str | Path) -> None:
        """Write a full-page diagnostic screenshot; never part of the crawl contract."""

        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            await self.page.screenshot(path=str(target), full_page=True)
            LOGGER.info("Saved debug screenshot: %s", target)
        except (PlaywrightError, OSError) as exc:
            LOGGER.warning("Failed to capture screenshot %s: %s", target, exc)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await close_browser(self._browser, self._context)
        if self._playwright_manager is not None:
            try:
                await self._playwright_manager.stop()
            except Exception as exc:
                LOGGER.warning("Failed to stop Playwright: %s", exc)
        LOGGER.info("Browser closed")
