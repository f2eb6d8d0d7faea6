"""Wallet ledger matching: did the user trade a token, and for what PnL.

The configured wallet's recent swap feed is cached per chain+wallet for 60s
so a sweep over many tokens costs one feed request.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import httpx
from loguru import logger
from pydantic import ValidationError

from paperhand.cache import TTLCache
from paperhand.chains import Chain, normalize_native_symbol, wallet_for_chain
from paperhand.parsers.cielo.client import CieloClient
from paperhand.parsers.cielo.models import CieloSwap
from paperhand.tracking_types import Trade

WALLET_FEED_TTL = 60.0
FEED_LIMIT = 100
MIN_SYMBOL_HINT_LEN = 3


class TrackedLeg(Enum):
    LEG0 = 0
    LEG1 = 1


@dataclass(frozen=True)
class LegClassification:
    action: str  # "buy" | "sell" | "unknown"
    quantity: float = 0.0
    price_per_unit: float = 0.0
    value_usd: float = 0.0
    value_native: float = 0.0
    currency: str = "USD"


UNKNOWN_LEG = LegClassification(action="unknown")


@dataclass
class PnlResult:
    amount: float | None
    currency: str
    buy_count: int = 0
    sell_count: int = 0
    total_spent: float = 0.0
    total_received: float = 0.0
    mixed_currency: bool = False


def classify_legs(swap: CieloSwap, tracked: TrackedLeg | None) -> LegClassification:
    """Which way the tracked token moved in ``swap``.

    ``is_sell`` means the wallet gave up leg0 for leg1:
      tracked=leg0, sell -> sell   tracked=leg0, buy -> buy
      tracked=leg1, sell -> buy    tracked=leg1, buy -> sell
    The other leg is the native/quote side.
    """
    if tracked is None:
        return UNKNOWN_LEG

    if tracked is TrackedLeg.LEG0:
        action = "sell" if swap.is_sell else "buy"
        return LegClassification(
            action=action,
            quantity=swap.token0_amount,
            price_per_unit=swap.token0_price_usd,
            value_usd=swap.token0_amount_usd,
            value_native=swap.token1_amount,
            currency=normalize_native_symbol(swap.token1_symbol) or "USD",
        )

    action = "buy" if swap.is_sell else "sell"
    return LegClassification(
        action=action,
        quantity=swap.token1_amount,
        price_per_unit=swap.token1_price_usd,
        value_usd=swap.token1_amount_usd,
        value_native=swap.token0_amount,
        currency=normalize_native_symbol(swap.token0_symbol) or "USD",
    )


def _same_address(a: str | None, b: str) -> bool:
    return bool(a) and a.lower() == b.lower()


def _same_symbol(a: str | None, hint: str) -> bool:
    return bool(a) and a.upper() == hint.upper()


def match_leg_by_address(swap: CieloSwap, token_address: str) -> TrackedLeg | None:
    if _same_address(swap.token0_address, token_address):
        return TrackedLeg.LEG0
    if _same_address(swap.token1_address, token_address):
        return TrackedLeg.LEG1
    return None


def match_leg_by_symbol(swap: CieloSwap, symbol_hint: str) -> TrackedLeg | None:
    if _same_symbol(swap.token0_symbol, symbol_hint):
        return TrackedLeg.LEG0
    if _same_symbol(swap.token1_symbol, symbol_hint):
        return TrackedLeg.LEG1
    return None


def match_swaps(
    swaps: list[CieloSwap],
    token_address: str,
    symbol_hint: str | None = None,
) -> list[tuple[CieloSwap, TrackedLeg]]:
    """Swaps involving the token, with the leg it sits on.

    Address matches win outright; the exact-symbol fallback is only used
    when nothing in the feed matches by address and the hint is at least
    three characters, so a common ticker can't hijack a real match.
    """
    by_address = [
        (s, leg) for s in swaps if (leg := match_leg_by_address(s, token_address)) is not None
    ]
    if by_address:
        return by_address
    if not symbol_hint or len(symbol_hint) < MIN_SYMBOL_HINT_LEN:
        return []
    return [
        (s, leg) for s in swaps if (leg := match_leg_by_symbol(s, symbol_hint)) is not None
    ]


def compute_pnl(legs: list[LegClassification]) -> PnlResult:
    """Realized PnL: native received on sells minus native spent on buys.

    Currency is the first sell's (first buy's if nothing was sold). Mixed
    currencies are flagged, not converted.
    """
    buys = [leg for leg in legs if leg.action == "buy"]
    sells = [leg for leg in legs if leg.action == "sell"]
    if not buys and not sells:
        return PnlResult(amount=None, currency="SOL")

    currency = (sells or buys)[0].currency
    mixed = any(leg.currency != currency for leg in buys + sells)
    total_spent = sum(leg.value_native for leg in buys)
    total_received = sum(leg.value_native for leg in sells)
    return PnlResult(
        amount=round(total_received - total_spent, 6),
        currency=currency,
        buy_count=len(buys),
        sell_count=len(sells),
        total_spent=total_spent,
        total_received=total_received,
        mixed_currency=mixed,
    )


def missed_profit(trades: list[Trade], ath_price: float | None) -> dict[str, float | str]:
    """How much more the sells would have returned at the ATH price."""
    result: dict[str, float | str] = {"missed": 0.0, "currency": "USD"}
    if not trades or not ath_price:
        return result
    buys = [t for t in trades if t.action == "buy"]
    sells = [t for t in trades if t.action == "sell"]
    if not buys or not sells:
        return result

    total_spent = sum(t.value_native for t in buys)
    total_received = sum(t.value_native for t in sells)
    avg_sell_price = sum(t.price_per_unit for t in sells) / len(sells)
    if avg_sell_price <= 0:
        return result

    potential = total_received * (ath_price / avg_sell_price)
    return {
        "missed": max(0.0, potential - total_received),
        "currency": sells[0].native_currency,
        "real_profit": total_received - total_spent,
        "potential_profit": potential - total_spent,
    }


def swap_to_trade(
    swap: CieloSwap, leg: LegClassification, token_address: str, chain: Chain
) -> Trade | None:
    if leg.action == "unknown" or not swap.tx_hash:
        return None
    traded_at = datetime.fromtimestamp(swap.timestamp, UTC) if swap.timestamp else None
    return Trade(
        contract_address=token_address,
        chain=chain,
        action=leg.action,
        quantity=leg.quantity,
        price_per_unit=leg.price_per_unit,
        value_usd=leg.value_usd,
        value_native=leg.value_native,
        native_currency=leg.currency,
        dex=swap.dex,
        tx_hash=swap.tx_hash,
        traded_at=traded_at,
    )


class WalletMatcher:
    """Buy evidence and realized PnL for a token from the wallet feed."""

    def __init__(
        self,
        client: CieloClient,
        cache: TTLCache[str, list[CieloSwap]] | None = None,
    ) -> None:
        self._client = client
        self._cache: TTLCache[str, list[CieloSwap]] = cache or TTLCache(WALLET_FEED_TTL)

    @property
    def cache(self) -> TTLCache[str, list[CieloSwap]]:
        return self._cache

    async def _recent_swaps(self, wallet: str, chain: Chain) -> list[CieloSwap] | None:
        """Cached swap feed; None when the feed could not be fetched."""
        key = f"{chain.value}:{wallet}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            swaps = await self._client.get_swaps(wallet, chain.info.cielo_id, limit=FEED_LIMIT)
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.warning(f"[WALLET] Feed fetch failed for {wallet[:8]} on {chain.value}: {e}")
            return None
        self._cache.set(key, swaps)
        logger.debug(f"[WALLET] Feed refreshed for {chain.value}: {len(swaps)} swaps")
        return swaps

    async def _matched(
        self,
        token_address: str,
        chain: Chain | str,
        wallets: dict[str, str] | None,
        symbol_hint: str | None,
    ) -> list[tuple[CieloSwap, TrackedLeg]] | None:
        parsed = Chain.try_parse(chain)
        if parsed is None:
            logger.debug(f"[WALLET] Unsupported chain {chain!r}")
            return None
        chain = parsed
        wallet = wallet_for_chain(wallets, chain)
        if not wallet:
            logger.debug(f"[WALLET] No wallet configured for {chain.value}")
            return None
        swaps = await self._recent_swaps(wallet, chain)
        if swaps is None:
            return None
        return match_swaps(swaps, token_address, symbol_hint)

    async def has_bought(
        self,
        token_address: str,
        chain: Chain | str,
        wallets: dict[str, str] | None,
        symbol_hint: str | None = None,
    ) -> bool:
        matched = await self._matched(token_address, chain, wallets, symbol_hint)
        if not matched:
            return False
        logger.info(
            f"[WALLET] Trade evidence for {symbol_hint or token_address[:8]} "
            f"({len(matched)} swaps)"
        )
        return True

    async def pnl(
        self,
        token_address: str,
        chain: Chain | str,
        wallets: dict[str, str] | None,
        symbol_hint: str | None = None,
    ) -> PnlResult:
        matched = await self._matched(token_address, chain, wallets, symbol_hint)
        if not matched:
            return PnlResult(amount=None, currency="SOL")

        result = compute_pnl([classify_legs(swap, leg) for swap, leg in matched])
        if result.mixed_currency:
            logger.warning(
                f"[WALLET] Mixed native currencies for {symbol_hint or token_address[:8]}, "
                f"PnL reported in {result.currency} without conversion"
            )
        if result.amount is not None:
            logger.info(
                f"[WALLET] PnL {symbol_hint or token_address[:8]}: {result.amount:.4f} "
                f"{result.currency} ({result.buy_count} buys, {result.sell_count} sells)"
            )
        return result

    async def token_trades(
        self,
        token_address: str,
        chain: Chain | str,
        wallets: dict[str, str] | None,
    ) -> list[Trade]:
        """Matched trades from a token-filtered feed query (uncached)."""
        chain = Chain.try_parse(chain)
        wallet = wallet_for_chain(wallets, chain) if chain else None
        if not wallet:
            return []
        try:
            swaps = await self._client.get_swaps(
                wallet, chain.info.cielo_id, limit=FEED_LIMIT, token=token_address
            )
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.warning(f"[WALLET] Trade fetch failed for {token_address[:8]}: {e}")
            return []

        trades: list[Trade] = []
        for swap in swaps:
            leg = classify_legs(swap, match_leg_by_address(swap, token_address))
            trade = swap_to_trade(swap, leg, token_address, chain)
            if trade is not None:
                trades.append(trade)
        return trades
