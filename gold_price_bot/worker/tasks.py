"""Scrape-and-save tasks shared by the scheduler, the API and the CLI."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from gold_price_bot import metrics
from gold_price_bot.db.gateway import PriceGateway, PriceRecord
from gold_price_bot.db.models import MULTI_SOURCE_COLUMNS, GoldPrice
from gold_price_bot.ingest.base import MultiSourceObservation, PriceObservation
from gold_price_bot.ingest.scrapers.multi_source import MultiSourceScraper
from gold_price_bot.ingest.scrapers.single_source import SingleSourceScraper

logger = logging.getLogger(__name__)

SCRAPE_MODES = ("single", "multi")

STATUS_SAVED = "saved"
STATUS_SAVE_FAILED = "save_failed"
STATUS_SCRAPE_FAILED = "scrape_failed"

Observation = Union[PriceObservation, MultiSourceObservation]


@dataclass
class ScrapeOutcome:
    """Result of one scrape-and-save run."""

    mode: str
    status: str
    observation: Optional[Observation] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == STATUS_SAVED


def observation_to_record(observation: Observation) -> PriceRecord:
    """Map a scrape observation onto a storage row."""
    if isinstance(observation, MultiSourceObservation):
        return PriceRecord(
            price=observation.price,
            source=", ".join(quote.source_url for quote in observation.prices.values()),
            currency=observation.primary.currency,
            time_period=observation.time_period,
            field_prices={name: quote.price for name, quote in observation.prices.items()},
        )
    return PriceRecord(
        price=observation.price,
        source=observation.source_url,
        currency=observation.currency,
        time_period=observation.time_period,
    )


def _record_price_gauges(observation: Observation) -> None:
    if isinstance(observation, MultiSourceObservation):
        for field_name, quote in observation.prices.items():
            metrics.last_price_gauge.labels(
                field_name=field_name, currency=quote.currency
            ).set(float(quote.price))
    else:
        metrics.last_price_gauge.labels(
            field_name="price", currency=observation.currency
        ).set(float(observation.price))


class TaskRunner:
    """
    Runs scrapes and persists their results.

    Only one scrape runs at a time; the lock serialises scheduled and manual
    triggers that would otherwise share a browser session.
    """

    def __init__(
        self,
        single_scraper: SingleSourceScraper,
        multi_scraper: MultiSourceScraper,
        gateway: PriceGateway,
        default_mode: str = "multi",
        keep_browser_alive: bool = False,
        retention_days: int = 0,
    ):
        if default_mode not in SCRAPE_MODES:
            raise ValueError(f"Unknown scrape mode: {default_mode}")
        self.single_scraper = single_scraper
        self.multi_scraper = multi_scraper
        self.gateway = gateway
        self.default_mode = default_mode
        self.keep_browser_alive = keep_browser_alive
        self.retention_days = retention_days
        self._lock = asyncio.Lock()
        self.last_outcome: Optional[ScrapeOutcome] = None
        self.started_at = datetime.now()

    @classmethod
    def from_settings(cls, settings, gateway: PriceGateway) -> "TaskRunner":
        """Build both scrapers from settings; invalid sources raise ConfigurationError."""
        return cls(
            single_scraper=SingleSourceScraper.from_settings(settings),
            multi_scraper=MultiSourceScraper.from_settings(
                settings, allowed_fields=MULTI_SOURCE_COLUMNS
            ),
            gateway=gateway,
            default_mode=settings.scraper_mode,
            keep_browser_alive=settings.keep_browser_alive,
            retention_days=settings.retention_days,
        )

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def _scraper_for(self, mode: str):
        return self.single_scraper if mode == "single" else self.multi_scraper

    async def scrape_and_save(self, mode: Optional[str] = None) -> ScrapeOutcome:
        """
        Scrape once and insert the observation.

        Scrape failures skip persistence entirely. A failed insert is
        reported as ``save_failed`` rather than raised.
        """
        mode = mode or self.default_mode
        if mode not in SCRAPE_MODES:
            raise ValueError(f"Unknown scrape mode: {mode}")

        async with self._lock:
            outcome = await self._run(mode)

        self.last_outcome = outcome
        metrics.scrape_runs_total.labels(mode=mode, status=outcome.status).inc()
        metrics.scrape_duration_seconds.labels(mode=mode).observe(outcome.duration_seconds)
        return outcome

    async def _run(self, mode: str) -> ScrapeOutcome:
        scraper = self._scraper_for(mode)
        logger.info(f"Starting {mode} scrape")
        start = time.monotonic()

        try:
            try:
                observation = await scraper.scrape()
            except Exception as e:
                logger.error(f"{mode} scrape failed: {type(e).__name__}: {e}")
                return ScrapeOutcome(
                    mode=mode,
                    status=STATUS_SCRAPE_FAILED,
                    error=f"{type(e).__name__}: {e}",
                    duration_seconds=time.monotonic() - start,
                )

            _record_price_gauges(observation)
            saved = await self.gateway.insert(observation_to_record(observation))
            metrics.records_saved_total.labels(status="success" if saved else "failure").inc()
            duration = time.monotonic() - start

            if not saved:
                logger.error(f"Scraped price {observation.price} but saving it failed")
                return ScrapeOutcome(
                    mode=mode,
                    status=STATUS_SAVE_FAILED,
                    observation=observation,
                    error="Failed to save price record",
                    duration_seconds=duration,
                )

            logger.info(f"{mode} scrape saved price {observation.price} in {duration:.1f}s")
            return ScrapeOutcome(
                mode=mode,
                status=STATUS_SAVED,
                observation=observation,
                duration_seconds=duration,
            )
        finally:
            if not self.keep_browser_alive:
                await scraper.close()

    async def latest_observation(self) -> Optional[GoldPrice]:
        rows = await self.gateway.latest(1)
        return rows[0] if rows else None

    async def history(self, limit: int = 100) -> list[GoldPrice]:
        return await self.gateway.latest(limit)

    async def history_range(
        self, start: datetime, end: datetime, limit: int = 1000
    ) -> list[GoldPrice]:
        return await self.gateway.range(start, end, limit)

    async def store_reachable(self) -> bool:
        return await self.gateway.test_connection()

    async def log_status(self) -> None:
        """Heartbeat: log uptime and the last run's result."""
        uptime = datetime.now() - self.started_at
        last = self.last_outcome
        summary = f"{last.mode} {last.status}" if last else "no runs yet"
        logger.info(
            "Status: uptime=%s running=%s last_run=%s",
            str(uptime).split(".")[0],
            self.is_running,
            summary,
        )

    async def purge_old_records(self) -> bool:
        """Delete rows past the retention window; no-op when retention is off."""
        if self.retention_days <= 0:
            return True
        return await self.gateway.delete_older_than(self.retention_days)

    async def close(self) -> None:
        for scraper in (self.single_scraper, self.multi_scraper):
            try:
                await scraper.close()
            except Exception as e:
                logger.warning(f"Error closing {scraper.get_source_name()} scraper: {e}")
        logger.info("Task runner closed")
