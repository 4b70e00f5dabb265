"""Persistence gateway for price observations.

Every write path converts store errors into a ``False`` result so that a
failed save never propagates into the scrape flow. Read paths log and return
empty results.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gold_price_bot.db.models import MULTI_SOURCE_COLUMNS, GoldPrice

logger = logging.getLogger(__name__)


@dataclass
class PriceRecord:
    """Row payload handed to the gateway."""

    price: Any
    source: Optional[str] = None
    currency: str = "USD"
    time_period: Optional[str] = None
    # Only set by restore/backfill; live inserts let the store stamp the row
    created_at: Optional[datetime] = None
    field_prices: dict[str, Any] = field(default_factory=dict)


def coerce_price(value: Any) -> Decimal:
    """Coerce a price to Decimal, rejecting non-numeric and non-positive values."""
    if isinstance(value, bool):
        raise ValueError(f"Not a price: {value!r}")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a price: {value!r}") from e
    if not price.is_finite() or price <= 0:
        raise ValueError(f"Price must be a positive number: {value!r}")
    return price


def _to_row(record: PriceRecord) -> GoldPrice:
    """Build an ORM row with all numeric fields re-coerced."""
    row = GoldPrice(
        price=coerce_price(record.price),
        source=record.source,
        currency=record.currency or "USD",
        time_period=record.time_period,
    )
    if record.created_at is not None:
        row.created_at = record.created_at

    for name, value in record.field_prices.items():
        if name not in MULTI_SOURCE_COLUMNS:
            raise ValueError(f"Unknown price column: {name}")
        setattr(row, name, coerce_price(value))
    return row


class PriceGateway:
    """Inserts observations into the price table and reads history back."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert(self, record: PriceRecord) -> bool:
        """Insert one row. Never raises."""
        try:
            row = _to_row(record)
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except Exception:
            logger.exception("Failed to insert price record: %s", asdict(record))
            return False

        logger.info(
            "Inserted price record: price=%s source=%s", row.price, record.source
        )
        return True

    async def insert_batch(self, records: Sequence[PriceRecord]) -> bool:
        """Insert many rows in one transaction. Used by restore/backfill."""
        if not records:
            logger.warning("insert_batch called with no records")
            return True

        try:
            rows = [_to_row(record) for record in records]
            async with self._session_factory() as session:
                session.add_all(rows)
                await session.commit()
        except Exception:
            logger.exception("Failed to insert batch of %d price records", len(records))
            return False

        logger.info("Inserted batch of %d price records", len(rows))
        return True

    async def latest(self, limit: int = 100) -> list[GoldPrice]:
        """Return up to ``limit`` rows, newest first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(GoldPrice)
                    .order_by(GoldPrice.created_at.desc(), GoldPrice.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except Exception:
            logger.exception("Failed to query latest price records")
            return []

    async def range(
        self, start: datetime, end: datetime, limit: int = 1000
    ) -> list[GoldPrice]:
        """Return rows created within [start, end], oldest first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(GoldPrice)
                    .where(GoldPrice.created_at >= start, GoldPrice.created_at <= end)
                    .order_by(GoldPrice.created_at.asc(), GoldPrice.id.asc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except Exception:
            logger.exception("Failed to query price records between %s and %s", start, end)
            return []

    async def count(self) -> int:
        """Total number of rows."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count(GoldPrice.id)))
                return result.scalar() or 0
        except Exception:
            logger.exception("Failed to count price records")
            return 0

    async def delete_older_than(self, days: int) -> bool:
        """Delete rows created more than ``days`` days ago."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(GoldPrice).where(GoldPrice.created_at < cutoff)
                )
                await session.commit()
        except Exception:
            logger.exception("Failed to delete price records older than %d days", days)
            return False

        logger.info("Deleted %s price records older than %d days", result.rowcount, days)
        return True

    async def test_connection(self) -> bool:
        """Minimal read to verify reachability and credentials."""
        try:
            async with self._session_factory() as session:
                await session.execute(select(GoldPrice.id).limit(1))
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

        logger.info("Database connection test succeeded")
        return True
