"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from gold_price_bot.api.routes import prices, status
from gold_price_bot.config import Settings, settings
from gold_price_bot.db.gateway import PriceGateway
from gold_price_bot.db.models import Base
from gold_price_bot.db.session import build_engine, build_session_factory
from gold_price_bot.ingest.base import ScraperSessionConfig
from gold_price_bot.ingest.browser_session import BrowserSessionManager
from gold_price_bot.logging_config import setup_logging
from gold_price_bot.worker.scheduler import ScrapeScheduler
from gold_price_bot.worker.tasks import TaskRunner

logger = logging.getLogger(__name__)


async def check_browser(app_settings: Settings) -> None:
    """Launch and close a browser once so a broken install fails at startup."""
    session = BrowserSessionManager(ScraperSessionConfig.from_settings(app_settings))
    try:
        await session.ensure_session()
        logger.info("Browser startup check passed")
    finally:
        await session.cleanup()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    app_settings: Settings = app.state.settings

    # Startup
    setup_logging(level=app_settings.log_level)
    logger.info("Starting Gold Price Bot...")

    engine = build_engine(app_settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    gateway = PriceGateway(build_session_factory(engine))
    if not await gateway.test_connection():
        await engine.dispose()
        raise RuntimeError("Database connection failed, refusing to start")

    if app_settings.browser_startup_check:
        try:
            await check_browser(app_settings)
        except Exception:
            await engine.dispose()
            raise

    task_runner = TaskRunner.from_settings(app_settings, gateway)
    scrape_scheduler = ScrapeScheduler.from_settings(task_runner, app_settings)
    scrape_scheduler.start()

    app.state.task_runner = task_runner
    app.state.scheduler = scrape_scheduler

    yield

    # Shutdown
    logger.info("Shutting down...")
    scrape_scheduler.shutdown()
    await task_runner.close()
    await engine.dispose()
    logger.info("Shutdown complete")


def create_app(app_settings: Settings = settings) -> FastAPI:
    """Create the FastAPI app; components are built by the lifespan."""
    app = FastAPI(
        title="Gold Price Bot",
        description="Scrape gold prices on a schedule and serve the history",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    # Add Prometheus instrumentation
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/health"],
    )
    instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

    app.include_router(prices.router)
    app.include_router(status.router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


def run_server(app_settings: Settings = settings) -> None:
    uvicorn.run(
        "gold_price_bot.main:app",
        host=app_settings.app_host,
        port=app_settings.app_port,
        reload=app_settings.debug,
        log_level=app_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server()
