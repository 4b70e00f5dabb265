"""Page navigation and text extraction on top of a Playwright page."""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from gold_price_bot import metrics
from gold_price_bot.ingest.base import PageLoadError, ScraperSessionConfig

logger = logging.getLogger(__name__)


# Text that usually means the quote site served a block page instead of data
ERROR_MARKERS = [
    "blocked",
    "access denied",
    "captcha",
    "访问被拒绝",
    "被阻止",
]


@dataclass
class ExtractionResult:
    """Text recovered by the first matching selector."""

    selector: str
    text: str


class PageExtractor:
    """Navigates pages and reads the text of candidate selectors."""

    def __init__(
        self,
        config: ScraperSessionConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._sleep = sleep

    async def human_delay(self) -> None:
        low, high = self.config.human_delay_ms
        delay_ms = random.uniform(low, max(low, high))
        await self._sleep(delay_ms / 1000)

    async def navigate(self, page: Page, url: str) -> None:
        """
        Load ``url`` and pause for a human-like delay.

        Raises:
            PageLoadError: Navigation failed or timed out
        """
        logger.info(f"Navigating to {url}")
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise PageLoadError(url, f"Navigation timed out after {self.config.timeout_ms}ms") from e
        except Exception as e:
            raise PageLoadError(url, str(e)) from e

        await self.human_delay()

    async def read_text(
        self, page: Page, selector: str, timeout_ms: Optional[int] = None
    ) -> Optional[str]:
        """
        Wait for ``selector`` and return its trimmed text.

        Returns None when the element never appears or has no text.
        """
        timeout = timeout_ms if timeout_ms is not None else self.config.timeout_ms
        state = "visible" if self.config.require_visible else "attached"
        try:
            element = await page.wait_for_selector(selector, state=state, timeout=timeout)
        except PlaywrightTimeoutError:
            logger.debug(f"Selector timed out after {timeout}ms: {selector[:60]}")
            return None

        if element is None:
            return None

        text = await element.text_content()
        text = (text or "").strip()
        return text or None

    async def extract_first_match(
        self, page: Page, selectors: list[str]
    ) -> Optional[ExtractionResult]:
        """Try each candidate selector in order; first non-empty text wins."""
        for i, selector in enumerate(selectors):
            try:
                text = await self.read_text(page, selector, self.config.selector_timeout_ms)
            except Exception as e:
                logger.debug(f"Selector {i+1}/{len(selectors)} error: {selector[:60]} - {e}")
                continue

            if text:
                logger.debug(f"Selector {i+1}/{len(selectors)} matched: {selector[:60]}")
                return ExtractionResult(selector=selector, text=text)

        return None

    async def analyze_page(self, page: Page, url: str) -> None:
        """Log the page title and warn about block-page markers. Never raises."""
        try:
            title = await page.title()
            body_text = await page.evaluate(
                "() => document.body ? document.body.innerText.substring(0, 5000) : ''"
            )
        except Exception as e:
            logger.debug(f"Page analysis error (non-fatal): {e}")
            return

        logger.debug(f"Page title for {url}: {title!r}")
        lowered = (body_text or "").lower()
        for marker in ERROR_MARKERS:
            if marker in lowered:
                logger.warning(f"Page {url} looks like an error page (found {marker!r})")
                break

    async def capture_screenshot(self, page: Page, reason: str) -> Optional[Path]:
        """Save a full-page PNG for debugging. Returns the path or None."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = Path(self.config.screenshot_dir) / f"debug-{reason}-{timestamp}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            logger.warning(f"Failed to capture screenshot ({reason}): {e}")
            return None

        metrics.screenshots_captured_total.labels(reason=reason).inc()
        logger.info(f"Debug screenshot saved: {path}")
        return path
