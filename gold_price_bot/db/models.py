"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# Numeric columns that a multi-source row may fill, keyed by source field_name
MULTI_SOURCE_COLUMNS = ("ny_price", "xau_price", "sh_price")


class GoldPrice(Base):
    """One persisted price observation."""

    __tablename__ = "gold_price"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # Assigned by the store at insert time
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    source: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    currency: Mapped[str] = mapped_column(String(10), default="USD", nullable=False)
    time_period: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Multi-source fields
    ny_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    xau_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    sh_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    __table_args__ = (
        Index("idx_gold_price_created_at", "created_at"),
        CheckConstraint("price > 0", name="ck_gold_price_positive"),
    )

    def field_prices(self) -> dict[str, Decimal]:
        """Return the populated multi-source columns."""
        return {
            name: getattr(self, name)
            for name in MULTI_SOURCE_COLUMNS
            if getattr(self, name) is not None
        }
