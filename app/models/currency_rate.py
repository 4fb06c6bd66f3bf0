"""
Currency rate model — the persistent, per-pair rate cache.

One row per canonical pair key (``USD-NGN``), overwritten whenever the
oracle returns a usable rate. Rows are never deleted; staleness is
judged when the row is read.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class CurrencyRate(Base):
    __tablename__ = "currency_rates"

    pair: Mapped[str] = mapped_column(String(7), primary_key=True)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    parallel_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sources: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<CurrencyRate {self.pair} rate={self.rate} at={self.updated_at}>"
