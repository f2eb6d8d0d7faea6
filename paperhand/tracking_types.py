"""Records shared between the engine components and the store.

These are the shapes that cross the store boundary and get serialized
onto the live event stream, so they are pydantic models.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from paperhand.chains import Chain


class TrackedToken(BaseModel):
    """A token a user looked at, enriched over time."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: int | None = None
    user_id: int
    contract_address: str
    chain: Chain
    symbol: str | None = None
    name: str | None = None

    # View context
    price_when_viewed: float | None = None
    mcap_when_viewed: float | None = None
    viewed_at: datetime | None = None
    source: str | None = None
    url: str | None = None

    # Decision state: False -> True only, cleared by reset_bought()
    bought: bool = False
    pnl_amount: float | None = None
    pnl_currency: str | None = None

    # All-time high since first view
    ath_price: float | None = None
    ath_mcap: float | None = None
    ath_date: datetime | None = None

    # Dev dump flags
    dev_dump_detected: bool = False
    dev_dump_percent: float | None = None
    dev_dump_date: datetime | None = None

    # From the latest PriceSnapshot (read-only, filled by the store)
    current_price: float | None = None
    current_mcap: float | None = None

    @property
    def symbol_hint(self) -> str | None:
        return self.symbol or self.name


class PriceData(BaseModel):
    """Market data resolved for one token on one chain."""

    symbol: str | None = None
    name: str | None = None
    price_usd: float | None = None
    mcap: float | None = None
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    liquidity: float = 0.0
    pair_address: str | None = None
    dex_id: str | None = None
    chain_id: str | None = None


class PriceSnapshot(BaseModel):
    """Append-only price history row written by the sweep."""

    model_config = ConfigDict(from_attributes=True)

    token_id: int
    price: float | None = None
    mcap: float | None = None
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    checked_at: datetime | None = None


class Trade(BaseModel):
    """One matched buy or sell leg, deduplicated by tx hash."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int | None = None
    contract_address: str
    chain: Chain
    action: str  # "buy" | "sell"
    quantity: float = 0.0
    price_per_unit: float = 0.0
    value_usd: float = 0.0
    value_native: float = 0.0
    native_currency: str = "USD"
    dex: str | None = None
    tx_hash: str
    traded_at: datetime | None = None
