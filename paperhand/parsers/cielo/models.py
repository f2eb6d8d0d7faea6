"""Pydantic models for Cielo Finance wallet feed responses."""

from pydantic import BaseModel, field_validator


class CieloSwap(BaseModel):
    """One swap from the wallet feed.

    ``is_sell`` means the wallet gave up token0 and received token1.
    """

    tx_hash: str | None = None
    dex: str | None = None
    timestamp: int = 0
    is_sell: bool = False
    first_interaction: bool = False

    token0_address: str | None = None
    token0_symbol: str | None = None
    token0_amount: float = 0.0
    token0_price_usd: float = 0.0
    token0_amount_usd: float = 0.0

    token1_address: str | None = None
    token1_symbol: str | None = None
    token1_amount: float = 0.0
    token1_price_usd: float = 0.0
    token1_amount_usd: float = 0.0

    model_config = {"extra": "ignore"}

    @field_validator(
        "token0_amount",
        "token0_price_usd",
        "token0_amount_usd",
        "token1_amount",
        "token1_price_usd",
        "token1_amount_usd",
        "timestamp",
        mode="before",
    )
    @classmethod
    def _none_to_zero(cls, v: object) -> object:
        return 0 if v is None or v == "" else v

    @field_validator("is_sell", "first_interaction", mode="before")
    @classmethod
    def _none_to_false(cls, v: object) -> object:
        return False if v is None else v
