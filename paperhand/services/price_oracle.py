"""Current market data for a token, with a 5 minute cache."""

from __future__ import annotations

import asyncio

import httpx
from loguru import logger
from pydantic import ValidationError

from paperhand.cache import TTLCache
from paperhand.chains import Chain
from paperhand.parsers.dexscreener.client import DexScreenerClient
from paperhand.parsers.dexscreener.models import DexScreenerPair
from paperhand.tracking_types import PriceData

PRICE_CACHE_TTL = 300.0


def select_pair(pairs: list[DexScreenerPair], chain: Chain) -> DexScreenerPair | None:
    """Deepest-liquidity pair on ``chain``; first pair overall if none match."""
    if not pairs:
        return None
    dex_chain = chain.info.dexscreener_id
    on_chain = [p for p in pairs if p.chainId == dex_chain]
    if on_chain:
        return max(on_chain, key=lambda p: p.liquidity_usd)
    return pairs[0]


def pair_to_price(pair: DexScreenerPair) -> PriceData:
    try:
        price_usd = float(pair.priceUsd) if pair.priceUsd else None
    except ValueError:
        price_usd = None
    mcap = pair.marketCap if pair.marketCap else pair.fdv
    change = pair.priceChange.h24 if pair.priceChange and pair.priceChange.h24 is not None else 0
    volume = pair.volume.h24 if pair.volume and pair.volume.h24 is not None else 0
    base = pair.baseToken
    return PriceData(
        symbol=base.symbol if base else None,
        name=base.name if base else None,
        price_usd=price_usd or None,
        mcap=float(mcap) if mcap else None,
        price_change_24h=float(change),
        volume_24h=float(volume),
        liquidity=pair.liquidity_usd,
        pair_address=pair.pairAddress or None,
        dex_id=pair.dexId or None,
        chain_id=pair.chainId or None,
    )


class PriceOracle:
    """Resolves PriceData per (chain, contract).

    ``None`` means unknown (network error, bad payload, no pairs), never zero.
    """

    def __init__(
        self,
        client: DexScreenerClient,
        cache: TTLCache[str, PriceData] | None = None,
    ) -> None:
        self._client = client
        self._cache: TTLCache[str, PriceData] = cache or TTLCache(PRICE_CACHE_TTL)

    @property
    def cache(self) -> TTLCache[str, PriceData]:
        return self._cache

    async def get_price(self, contract: str, chain: Chain | str) -> PriceData | None:
        parsed = Chain.try_parse(chain)
        if parsed is None:
            logger.debug(f"[PRICE] Unsupported chain {chain!r} for {contract[:8]}")
            return None
        chain = parsed
        key = f"{chain.value}:{contract}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            pairs = await self._client.get_token_pairs(contract)
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.warning(f"[PRICE] Lookup failed for {contract[:8]} on {chain.value}: {e}")
            return None

        pair = select_pair(pairs, chain)
        if pair is None:
            logger.debug(f"[PRICE] No pairs for {contract[:8]} on {chain.value}")
            return None

        data = pair_to_price(pair)
        self._cache.set(key, data)
        return data

    def evict_stale(self) -> int:
        """Drop entries older than twice the TTL."""
        evicted = self._cache.evict_older_than(self._cache.ttl * 2)
        if evicted:
            logger.debug(f"[PRICE] Evicted {evicted} stale cache entries")
        return evicted

    async def eviction_loop(self) -> None:
        """Run evict_stale() every TTL."""
        while True:
            await asyncio.sleep(self._cache.ttl)
            self.evict_stale()
