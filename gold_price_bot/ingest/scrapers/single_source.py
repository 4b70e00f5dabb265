"""Single-source scraper: one quote page, an ordered list of candidate selectors."""

import logging
from decimal import Decimal
from typing import Optional

from playwright.async_api import Page

from gold_price_bot.ingest.base import (
    BaseScraper,
    PriceObservation,
    PriceParseError,
    ScraperSessionConfig,
    SelectorNotFoundError,
    utc_now,
)
from gold_price_bot.ingest.browser_session import BrowserSessionManager
from gold_price_bot.ingest.page_extractor import ExtractionResult, PageExtractor
from gold_price_bot.ingest.price_parser import require_positive_price
from gold_price_bot.ingest.retry import with_retry
from gold_price_bot.logging_config import get_logger

logger = logging.getLogger(__name__)


class SingleSourceScraper(BaseScraper):
    """Reads one price from a fixed URL, trying selectors until one matches."""

    def __init__(
        self,
        config: ScraperSessionConfig,
        url: str,
        selectors: list[str],
        currency: str = "USD",
        time_period: str = "1d",
        session: Optional[BrowserSessionManager] = None,
        extractor: Optional[PageExtractor] = None,
    ):
        self.config = config
        self.url = url
        self.selectors = list(selectors)
        self.currency = currency
        self.time_period = time_period
        self.session = session or BrowserSessionManager(config)
        self.extractor = extractor or PageExtractor(config)
        self.log = get_logger(__name__, scraper=self.get_source_name(), mode="single")

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "SingleSourceScraper":
        return cls(
            config=ScraperSessionConfig.from_settings(settings),
            url=settings.single_source_url,
            selectors=settings.single_source_selectors,
            currency=settings.single_source_currency,
            time_period=settings.single_source_time_period,
            **kwargs,
        )

    def get_source_name(self) -> str:
        return "eastmoney.com"

    async def navigate(self, page: Page, url: str) -> None:
        await self.extractor.navigate(page, url)

    async def extract_first_match(
        self, page: Page, selectors: list[str]
    ) -> Optional[ExtractionResult]:
        return await self.extractor.extract_first_match(page, selectors)

    def parse_price(self, text: str) -> Decimal:
        return require_positive_price(text)

    def build_observation(self, price: Decimal) -> PriceObservation:
        return PriceObservation(
            price=price,
            currency=self.currency,
            source_url=self.url,
            time_period=self.time_period,
            captured_at=utc_now(),
        )

    async def _scrape_page(self, page: Page) -> PriceObservation:
        await self.navigate(page, self.url)
        await self.extractor.analyze_page(page, self.url)

        match = await self.extract_first_match(page, self.selectors)
        if match is None:
            screenshot = await self.extractor.capture_screenshot(page, "element-not-found")
            raise SelectorNotFoundError(
                self.selectors, self.url, str(screenshot) if screenshot else None
            )

        self.log.info(f"Price text {match.text!r} found with selector {match.selector[:60]}")
        try:
            price = self.parse_price(match.text)
        except Exception:
            await self.extractor.capture_screenshot(page, "parse-error")
            raise

        observation = self.build_observation(price)
        self.log.info(f"Scraped price {observation.price} {observation.currency}")
        return observation

    async def _perform_scrape(self) -> PriceObservation:
        page = await self.session.new_page()
        try:
            return await self._scrape_page(page)
        except (SelectorNotFoundError, PriceParseError):
            # Already captured at the point of failure
            raise
        except Exception:
            await self.extractor.capture_screenshot(page, "error")
            raise
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Error closing page: {e}")

    async def scrape(self) -> PriceObservation:
        """Scrape the price, retrying transient failures."""
        return await with_retry(
            self._perform_scrape,
            max_attempts=self.config.retry_count,
            base_delay_ms=self.config.retry_base_delay_ms,
        )

    async def close(self) -> None:
        await self.session.cleanup()
