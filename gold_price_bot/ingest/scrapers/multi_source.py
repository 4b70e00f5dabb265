"""Multi-source scraper: several quote pages visited in one batch on a shared page."""

import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence

from playwright.async_api import Page

from gold_price_bot import metrics
from gold_price_bot.ingest.base import (
    AllSourcesFailedError,
    BaseScraper,
    ConfigurationError,
    MultiSourceObservation,
    ScraperSessionConfig,
    SelectorNotFoundError,
    SourceConfig,
    SourceQuote,
    build_source_configs,
    utc_now,
)
from gold_price_bot.ingest.browser_session import BrowserSessionManager
from gold_price_bot.ingest.page_extractor import ExtractionResult, PageExtractor
from gold_price_bot.ingest.price_parser import require_positive_price
from gold_price_bot.ingest.retry import with_retry
from gold_price_bot.logging_config import get_logger

logger = logging.getLogger(__name__)


class MultiSourceScraper(BaseScraper):
    """
    Scrapes every configured source in order and tolerates partial failure.

    A batch succeeds when at least one source yields a price. Failed sources
    are logged with a screenshot and left out of the observation.
    """

    def __init__(
        self,
        config: ScraperSessionConfig,
        sources: Sequence[SourceConfig],
        delay_ms: int = 2000,
        sequential: bool = True,
        time_period: str = "realtime",
        session: Optional[BrowserSessionManager] = None,
        extractor: Optional[PageExtractor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.sources = tuple(sources)
        self.delay_ms = delay_ms
        self.sequential = sequential
        self.time_period = time_period
        self.session = session or BrowserSessionManager(config)
        self.extractor = extractor or PageExtractor(config, sleep=sleep)
        self._sleep = sleep
        self.log = get_logger(__name__, scraper=self.get_source_name(), mode="multi")

    @classmethod
    def from_settings(cls, settings, allowed_fields=None, **kwargs) -> "MultiSourceScraper":
        return cls(
            config=ScraperSessionConfig.from_settings(settings),
            sources=build_source_configs(settings.multi_sources, allowed_fields),
            delay_ms=settings.multi_source_delay_ms,
            sequential=settings.multi_source_sequential,
            time_period=settings.multi_source_time_period,
            **kwargs,
        )

    def get_source_name(self) -> str:
        return "eastmoney.com (multi)"

    async def navigate(self, page: Page, url: str) -> None:
        await self.extractor.navigate(page, url)

    async def extract_first_match(
        self, page: Page, selectors: list[str]
    ) -> Optional[ExtractionResult]:
        return await self.extractor.extract_first_match(page, selectors)

    def parse_price(self, text: str) -> Decimal:
        return require_positive_price(text)

    def build_observation(self, prices: dict[str, SourceQuote]) -> MultiSourceObservation:
        return MultiSourceObservation(
            prices=prices,
            time_period=self.time_period,
            captured_at=utc_now(),
        )

    async def _scrape_source(self, page: Page, source: SourceConfig) -> SourceQuote:
        try:
            await self.navigate(page, source.url)
        except Exception:
            await self.extractor.capture_screenshot(page, f"{source.field_name}-error")
            raise

        text = await self.extractor.read_text(page, source.selector)
        if not text:
            await self.extractor.capture_screenshot(page, f"{source.field_name}-not-found")
            raise SelectorNotFoundError([source.selector], source.url)

        try:
            price = self.parse_price(text)
        except Exception:
            await self.extractor.capture_screenshot(page, f"{source.field_name}-parse-error")
            raise

        self.log.info(f"{source.name}: {price} {source.currency}")
        return SourceQuote(price=price, currency=source.currency, source_url=source.url)

    async def _perform_batch(self) -> MultiSourceObservation:
        prices: dict[str, SourceQuote] = {}
        failures: dict[str, str] = {}

        page = await self.session.new_page()
        try:
            for index, source in enumerate(self.sources):
                try:
                    prices[source.field_name] = await self._scrape_source(page, source)
                except Exception as e:
                    failures[source.field_name] = f"{type(e).__name__}: {e}"
                    metrics.source_failures_total.labels(
                        field_name=source.field_name, error_type=type(e).__name__
                    ).inc()
                    self.log.warning(f"Source {source.name} failed: {type(e).__name__}: {e}")

                if index < len(self.sources) - 1 and self.delay_ms > 0:
                    await self._sleep(self.delay_ms / 1000)
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Error closing page: {e}")

        if not prices:
            raise AllSourcesFailedError(failures)

        if failures:
            self.log.warning(
                f"Partial batch: {len(prices)}/{len(self.sources)} sources succeeded"
            )
        return self.build_observation(prices)

    async def scrape_multi_source(self) -> MultiSourceObservation:
        """Scrape all sources, retrying the whole batch when every source fails."""
        if not self.sources:
            raise ConfigurationError("No sources configured for multi-source scrape")

        if not self.sequential:
            self.log.warning("Parallel multi-source scraping is not supported, running sequentially")

        return await with_retry(
            self._perform_batch,
            max_attempts=self.config.retry_count,
            base_delay_ms=self.config.retry_base_delay_ms,
        )

    async def scrape(self) -> MultiSourceObservation:
        return await self.scrape_multi_source()

    async def close(self) -> None:
        await self.session.cleanup()
