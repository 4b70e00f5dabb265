"""Command line entry point.

    python -m gold_price_bot              run the API server and scheduler
    python -m gold_price_bot --manual     scrape and save once
    python -m gold_price_bot --history 10 print the last 10 stored rows
"""

import argparse
import asyncio
import json
import logging
import sys

from gold_price_bot.config import Settings, settings
from gold_price_bot.db.gateway import PriceGateway
from gold_price_bot.db.session import build_engine, build_session_factory
from gold_price_bot.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gold_price_bot",
        description="Gold price scraper with scheduled collection and an HTTP API",
    )
    parser.add_argument(
        "-m", "--manual",
        action="store_true",
        help="Run one scrape-and-save and exit",
    )
    parser.add_argument(
        "-H", "--history",
        type=int,
        metavar="N",
        help="Print the last N stored prices as JSON and exit",
    )
    parser.add_argument(
        "--mode",
        choices=["single", "multi"],
        help="Scrape mode for --manual (default: SCRAPER_MODE setting)",
    )
    return parser


def row_to_dict(row) -> dict:
    return {
        "id": row.id,
        "price": float(row.price),
        "currency": row.currency,
        "source": row.source,
        "time_period": row.time_period,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        **{name: float(value) for name, value in row.field_prices().items()},
    }


async def run_manual(app_settings: Settings, mode: str | None = None) -> int:
    """Scrape once; exit code 0 only when the price was saved."""
    from gold_price_bot.worker.tasks import TaskRunner

    engine = build_engine(app_settings.database_url)
    try:
        gateway = PriceGateway(build_session_factory(engine))
        if not await gateway.test_connection():
            logger.error("Database connection failed")
            return 1

        task_runner = TaskRunner.from_settings(app_settings, gateway)
        try:
            outcome = await task_runner.scrape_and_save(mode)
        finally:
            await task_runner.close()

        if outcome.success:
            logger.info(f"Manual scrape saved price {outcome.observation.price}")
            return 0
        logger.error(f"Manual scrape failed: {outcome.status} ({outcome.error})")
        return 1
    finally:
        await engine.dispose()


async def show_history(app_settings: Settings, limit: int) -> int:
    engine = build_engine(app_settings.database_url)
    try:
        gateway = PriceGateway(build_session_factory(engine))
        rows = await gateway.latest(limit)
    finally:
        await engine.dispose()

    print(json.dumps([row_to_dict(row) for row in rows], ensure_ascii=False, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.history is not None:
        if args.history < 1:
            print("--history needs a positive number", file=sys.stderr)
            return 2
        setup_logging(level=settings.log_level)
        return asyncio.run(show_history(settings, args.history))

    if args.manual:
        setup_logging(level=settings.log_level)
        return asyncio.run(run_manual(settings, args.mode))

    from gold_price_bot.main import run_server

    run_server(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
