"""Tests for the scrape-and-save task runner."""

from decimal import Decimal

import pytest

from gold_price_bot.ingest.base import (
    AllSourcesFailedError,
    MultiSourceObservation,
    PriceObservation,
    SourceQuote,
)
from gold_price_bot.config import Settings
from gold_price_bot.ingest.base import ConfigurationError
from gold_price_bot.worker.tasks import (
    STATUS_SAVE_FAILED,
    STATUS_SAVED,
    STATUS_SCRAPE_FAILED,
    TaskRunner,
    observation_to_record,
)


class StubScraper:
    def __init__(self, result=None, error=None, name="stub"):
        self.result = result
        self.error = error
        self.name = name
        self.scrape_calls = 0
        self.close_calls = 0

    async def scrape(self):
        self.scrape_calls += 1
        if self.error:
            raise self.error
        return self.result

    async def close(self):
        self.close_calls += 1

    def get_source_name(self):
        return self.name


class RecordingGateway:
    def __init__(self, insert_result=True):
        self.insert_result = insert_result
        self.inserted = []

    async def insert(self, record):
        self.inserted.append(record)
        return self.insert_result


def single_observation(price="2050.10"):
    return PriceObservation(
        price=Decimal(price),
        currency="USD",
        source_url="https://q.example.com/gold",
        time_period="1d",
    )


def multi_observation():
    return MultiSourceObservation(
        prices={
            "ny_price": SourceQuote(Decimal("2050.10"), "USD", "https://q.example.com/ny"),
            "sh_price": SourceQuote(Decimal("480.20"), "CNY", "https://q.example.com/sh"),
        },
        time_period="realtime",
    )


def make_runner(single=None, multi=None, gateway=None, **kwargs):
    return TaskRunner(
        single_scraper=single or StubScraper(single_observation(), name="single"),
        multi_scraper=multi or StubScraper(multi_observation(), name="multi"),
        gateway=gateway or RecordingGateway(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_multi_is_default_and_saved(gateway):
    runner = make_runner(gateway=gateway)

    outcome = await runner.scrape_and_save()

    assert outcome.status == STATUS_SAVED
    assert outcome.mode == "multi"
    assert outcome.success is True
    row = (await gateway.latest(1))[0]
    assert row.price == Decimal("2050.10")
    assert row.sh_price == Decimal("480.20")
    assert runner.last_outcome is outcome


@pytest.mark.asyncio
async def test_single_mode_uses_single_scraper():
    single = StubScraper(single_observation("2048.75"))
    gateway = RecordingGateway()
    runner = make_runner(single=single, gateway=gateway)

    outcome = await runner.scrape_and_save("single")

    assert outcome.status == STATUS_SAVED
    assert single.scrape_calls == 1
    assert gateway.inserted[0].price == Decimal("2048.75")
    assert gateway.inserted[0].field_prices == {}


@pytest.mark.asyncio
async def test_scrape_failure_skips_persistence():
    gateway = RecordingGateway()
    multi = StubScraper(error=AllSourcesFailedError({"ny_price": "timeout"}))
    runner = make_runner(multi=multi, gateway=gateway)

    outcome = await runner.scrape_and_save()

    assert outcome.status == STATUS_SCRAPE_FAILED
    assert "AllSourcesFailedError" in outcome.error
    assert gateway.inserted == []


@pytest.mark.asyncio
async def test_save_failure_is_reported_separately():
    runner = make_runner(gateway=RecordingGateway(insert_result=False))

    outcome = await runner.scrape_and_save()

    assert outcome.status == STATUS_SAVE_FAILED
    assert outcome.observation is not None


@pytest.mark.asyncio
async def test_browser_closed_after_run_unless_kept_alive():
    multi = StubScraper(multi_observation())
    await make_runner(multi=multi).scrape_and_save()
    assert multi.close_calls == 1

    kept = StubScraper(multi_observation())
    await make_runner(multi=kept, keep_browser_alive=True).scrape_and_save()
    assert kept.close_calls == 0


@pytest.mark.asyncio
async def test_unknown_mode_is_rejected():
    runner = make_runner()

    with pytest.raises(ValueError):
        await runner.scrape_and_save("parallel")


@pytest.mark.asyncio
async def test_purge_respects_retention(gateway):
    from gold_price_bot.db.gateway import PriceRecord

    await gateway.insert(PriceRecord(price="1"))
    disabled = make_runner(gateway=gateway)
    assert await disabled.purge_old_records() is True
    assert await gateway.count() == 1

    enabled = make_runner(gateway=gateway, retention_days=30)
    assert await enabled.purge_old_records() is True
    assert await gateway.count() == 1


@pytest.mark.asyncio
async def test_status_heartbeat_logs(caplog):
    runner = make_runner()
    await runner.scrape_and_save()

    with caplog.at_level("INFO"):
        await runner.log_status()

    assert "multi saved" in caplog.text


@pytest.mark.asyncio
async def test_close_closes_both_scrapers():
    single = StubScraper(single_observation())
    multi = StubScraper(multi_observation())

    await make_runner(single=single, multi=multi).close()

    assert single.close_calls == 1
    assert multi.close_calls == 1


def test_multi_observation_record_fills_source_columns():
    record = observation_to_record(multi_observation())

    assert record.price == Decimal("2050.10")
    assert record.currency == "USD"
    assert record.time_period == "realtime"
    assert record.field_prices == {
        "ny_price": Decimal("2050.10"),
        "sh_price": Decimal("480.20"),
    }
    assert record.source == "https://q.example.com/ny, https://q.example.com/sh"


def test_single_observation_record_has_no_source_columns():
    record = observation_to_record(single_observation())

    assert record.price == Decimal("2050.10")
    assert record.source == "https://q.example.com/gold"
    assert record.time_period == "1d"
    assert record.field_prices == {}


@pytest.mark.asyncio
async def test_multi_observation_is_saved_as_record(gateway):
    runner = make_runner(gateway=gateway)

    outcome = await runner.scrape_and_save("multi")

    assert outcome.success
    row = (await gateway.latest(1))[0]
    assert row.ny_price == Decimal("2050.10")
    assert row.sh_price == Decimal("480.20")
    assert row.xau_price is None


def test_from_settings_rejects_source_without_storage_column():
    settings = Settings(
        multi_sources=[
            {"name": "LBMA", "url": "https://a", "selector": ".p", "field_name": "lbma_price"}
        ]
    )

    with pytest.raises(ConfigurationError):
        TaskRunner.from_settings(settings, RecordingGateway())
