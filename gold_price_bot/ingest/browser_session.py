"""Headless browser session lifecycle.

One BrowserSessionManager owns one Playwright driver, one Chromium process
and one browsing context. It is created lazily, rebuilt when the browser
reports disconnected, and torn down by ``cleanup()``.
"""

import asyncio
import logging
import os
import sys
from typing import Callable, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright

from gold_price_bot import metrics
from gold_price_bot.ingest.base import BrowserSessionError, ScraperSessionConfig
from gold_price_bot.ingest.stealth_browser import apply_stealth

logger = logging.getLogger(__name__)


# Flags for running Chromium inside containers without a sandbox or GPU
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--disable-blink-features=AutomationControlled",
]

BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})

CONTEXT_LOCALE = "en-US"
CONTEXT_TIMEZONE = "America/New_York"

SYSTEM_BROWSER_PATHS = {
    "win32": [
        "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    ],
    "darwin": [
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
    ],
    "linux": [
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
    ],
}


def should_block_resource(resource_type: str, blocked: frozenset[str] = BLOCKED_RESOURCE_TYPES) -> bool:
    """Return True when a request of this resource type should be aborted."""
    return resource_type in blocked


def detect_system_browser(platform: Optional[str] = None) -> Optional[str]:
    """Find an installed Chrome/Chromium binary for the current platform."""
    platform = platform or sys.platform
    key = "linux" if platform.startswith("linux") else platform
    for path in SYSTEM_BROWSER_PATHS.get(key, []):
        if os.path.exists(path):
            return path
    return None


async def _route_resource_filter(route: Route) -> None:
    if should_block_resource(route.request.resource_type):
        await route.abort()
    else:
        await route.continue_()


class BrowserSessionManager:
    """Owns the browser process and its single context for one scraper."""

    def __init__(
        self,
        config: ScraperSessionConfig,
        playwright_factory: Callable = async_playwright,
    ):
        """
        Args:
            config: Immutable session configuration
            playwright_factory: Returns an object whose ``start()`` yields a
                Playwright instance (``async_playwright`` in production)
        """
        self.config = config
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._init_lock = asyncio.Lock()
        self.launch_count = 0

    @property
    def is_alive(self) -> bool:
        return (
            self._context is not None
            and self._browser is not None
            and self._browser.is_connected()
        )

    def _resolve_executable_path(self) -> Optional[str]:
        if self.config.executable_path:
            return self.config.executable_path
        if self.config.use_system_browser:
            path = detect_system_browser()
            if path is None:
                logger.warning("No system Chrome found, falling back to bundled Chromium")
            return path
        return None

    def _launch_options(self) -> dict:
        options = {"headless": self.config.headless, "args": list(LAUNCH_ARGS)}
        executable_path = self._resolve_executable_path()
        if executable_path:
            options["executable_path"] = executable_path
            logger.info(f"Using system Chrome: {executable_path}")
        else:
            logger.info("Using Playwright bundled Chromium")
        return options

    async def ensure_session(self) -> BrowserContext:
        """Launch the browser and context unless a live session exists."""
        async with self._init_lock:
            if self.is_alive:
                return self._context

            if self._browser is not None or self._context is not None:
                logger.info("Browser session is stale, rebuilding")
            await self._close_handles()

            try:
                self._playwright = await self._playwright_factory().start()
                self._browser = await self._playwright.chromium.launch(**self._launch_options())
                self.launch_count += 1
                metrics.browser_launches_total.inc()

                self._context = await self._browser.new_context(
                    user_agent=self.config.user_agent,
                    viewport=self.config.viewport_size,
                    locale=CONTEXT_LOCALE,
                    timezone_id=CONTEXT_TIMEZONE,
                    permissions=["notifications"],
                    color_scheme="light",
                )
                await apply_stealth(self._context)
            except Exception as e:
                logger.error(f"Browser launch failed: {type(e).__name__}: {e}")
                await self._close_handles()
                raise BrowserSessionError(f"Browser launch failed: {e}") from e

            logger.info("Browser session initialised")
            return self._context

    async def _prepare_page(self, page: Page) -> Page:
        page.set_default_timeout(self.config.timeout_ms)
        page.set_default_navigation_timeout(self.config.timeout_ms)
        await page.route("**/*", _route_resource_filter)
        return page

    async def new_page(self) -> Page:
        """
        Open a page on the current context.

        A failed page creation rebuilds the session once before the error is
        propagated.
        """
        context = await self.ensure_session()
        try:
            page = await context.new_page()
            return await self._prepare_page(page)
        except Exception as e:
            logger.error(f"Failed to create page, rebuilding browser session: {e}")

        await self.cleanup()
        context = await self.ensure_session()
        page = await context.new_page()
        return await self._prepare_page(page)

    async def _close_handles(self) -> None:
        """Close context, browser and driver; each failure is logged and skipped."""
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                logger.warning(f"Error closing browser context: {e}")
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self._playwright = None

    async def cleanup(self) -> None:
        """Tear down the session. Safe to call repeatedly."""
        if self._context is None and self._browser is None and self._playwright is None:
            return
        async with self._init_lock:
            await self._close_handles()
        logger.info("Browser session cleaned up")
