from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paperhand.models.base import Base


class TrackedTokenRow(Base):
    """A token a user viewed (one row per user+token+day)."""

    __tablename__ = "tracked_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, default=1)
    contract_address: Mapped[str] = mapped_column(String(128))
    chain: Mapped[str] = mapped_column(String(16))
    symbol: Mapped[str | None] = mapped_column(String(64))
    name: Mapped[str | None] = mapped_column(String(255))

    price_when_viewed: Mapped[float | None] = mapped_column(Float)
    mcap_when_viewed: Mapped[float | None] = mapped_column(Float)
    viewed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    source: Mapped[str | None] = mapped_column(String(50))
    url: Mapped[str | None] = mapped_column(String(1000))

    bought: Mapped[bool] = mapped_column(Boolean, default=False)
    pnl_amount: Mapped[float | None] = mapped_column(Float)
    pnl_currency: Mapped[str | None] = mapped_column(String(10))

    ath_price: Mapped[float | None] = mapped_column(Float)
    ath_mcap: Mapped[float | None] = mapped_column(Float)
    ath_date: Mapped[datetime | None] = mapped_column(DateTime)

    dev_dump_detected: Mapped[bool] = mapped_column(Boolean, default=False)
    dev_dump_percent: Mapped[float | None] = mapped_column(Float)
    dev_dump_date: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_tracked_user_contract", "user_id", "contract_address", "chain"),
        Index("idx_tracked_viewed_at", "viewed_at"),
    )


class PriceHistoryRow(Base):
    """Append-only price snapshot written by the sweep."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_id: Mapped[int] = mapped_column(ForeignKey("tracked_tokens.id", ondelete="CASCADE"))
    price: Mapped[float | None] = mapped_column(Float)
    mcap: Mapped[float | None] = mapped_column(Float)
    price_change_24h: Mapped[float | None] = mapped_column(Float)
    volume_24h: Mapped[float | None] = mapped_column(Float)
    checked_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_price_history_token_time", "token_id", "checked_at"),)
