from decimal import Decimal

from pydantic import BaseModel


class DexScreenerToken(BaseModel):
    address: str = ""
    name: str | None = None
    symbol: str | None = None

    model_config = {"extra": "ignore"}


class DexScreenerLiquidity(BaseModel):
    usd: Decimal | None = None
    base: Decimal | None = None
    quote: Decimal | None = None

    model_config = {"extra": "ignore"}


class DexScreenerWindow(BaseModel):
    """Per-period numbers (volume, priceChange)."""

    m5: Decimal | None = None
    h1: Decimal | None = None
    h6: Decimal | None = None
    h24: Decimal | None = None

    model_config = {"extra": "ignore"}


class DexScreenerPair(BaseModel):
    chainId: str = ""
    dexId: str = ""
    pairAddress: str = ""
    baseToken: DexScreenerToken | None = None
    quoteToken: DexScreenerToken | None = None
    priceUsd: str | None = None
    volume: DexScreenerWindow | None = None
    priceChange: DexScreenerWindow | None = None
    liquidity: DexScreenerLiquidity | None = None
    marketCap: Decimal | None = None
    fdv: Decimal | None = None
    pairCreatedAt: int | None = None

    model_config = {"extra": "ignore"}

    @property
    def liquidity_usd(self) -> float:
        if self.liquidity and self.liquidity.usd is not None:
            return float(self.liquidity.usd)
        return 0.0
