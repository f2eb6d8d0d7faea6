from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from paperhand.models.base import Base


class TradeRow(Base):
    """A matched swap leg from the wallet feed."""

    __tablename__ = "my_trades"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer)
    contract_address: Mapped[str] = mapped_column(String(128))
    chain: Mapped[str] = mapped_column(String(16))
    action: Mapped[str] = mapped_column(String(8))
    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    price_per_unit: Mapped[float] = mapped_column(Float, default=0.0)
    value_usd: Mapped[float] = mapped_column(Float, default=0.0)
    value_native: Mapped[float] = mapped_column(Float, default=0.0)
    native_currency: Mapped[str] = mapped_column(String(10), default="USD")
    dex: Mapped[str | None] = mapped_column(String(50))
    tx_hash: Mapped[str] = mapped_column(String(128))
    traded_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (UniqueConstraint("tx_hash", name="uq_trade_tx_hash"),)
