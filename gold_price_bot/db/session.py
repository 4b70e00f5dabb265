"""Async engine and session factory construction."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from gold_price_bot.config import settings


def build_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create the async engine for the price store."""
    url = database_url or settings.database_url
    options = {"echo": settings.debug if echo is None else echo}
    if not url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_size=5, max_overflow=5)
    return create_async_engine(url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the gateway; objects stay usable after commit."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
