"""Event-driven operations on tracked tokens.

Everything here writes through the store and then tells the notifier, so
the dashboard sees each change as it happens.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from paperhand.chains import Chain
from paperhand.errors import WalletNotConfiguredError
from paperhand.parsers.helius.ws_client import HeliusTransactionMonitor, LiveTransaction
from paperhand.services.notifier import NotificationEvent, Notifier
from paperhand.services.price_oracle import PriceOracle
from paperhand.services.wallet_matcher import WalletMatcher, missed_profit
from paperhand.store.base import WALLETS_SETTING, TrackerStore
from paperhand.tracking_types import PriceData, TrackedToken
from paperhand.utils.clock import utcnow


@dataclass
class ViewResult:
    id: int
    bought: bool
    token: TrackedToken
    is_new: bool


class TrackerService:
    def __init__(
        self,
        store: TrackerStore,
        oracle: PriceOracle,
        matcher: WalletMatcher,
        notifier: Notifier,
        *,
        monitor: HeliusTransactionMonitor | None = None,
        multi_tenant: bool = False,
        trade_sync_delay: float = 0.3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._matcher = matcher
        self._notifier = notifier
        self._monitor = monitor
        self._multi_tenant = multi_tenant
        self._trade_sync_delay = trade_sync_delay
        self._sleep = sleep

    async def wallets_for(self, user_id: int) -> dict[str, str] | None:
        wallets = await self._store.get_setting(user_id, WALLETS_SETTING)
        return wallets if isinstance(wallets, dict) else None

    async def record_view(
        self,
        user_id: int,
        contract_address: str,
        chain: Chain | str,
        *,
        source: str | None = None,
        url: str | None = None,
        name: str | None = None,
        symbol: str | None = None,
        mcap: float | None = None,
        pnl_amount: float | None = None,
        pnl_currency: str | None = None,
    ) -> ViewResult:
        """Upsert today's view of a token and check the wallet for a buy."""
        chain = Chain.parse(chain)

        price: PriceData | None = None
        if not mcap:
            price = await self._oracle.get_price(contract_address, chain)

        token_name = name or (price.name if price else None)
        token_symbol = symbol or (price.symbol if price else None)
        token_mcap = mcap or (price.mcap if price else None)
        price_usd = price.price_usd if price else None

        existing = await self._store.find_todays_token(
            user_id, contract_address, chain, utcnow().date()
        )
        if existing is not None and existing.id is not None:
            updates: dict[str, Any] = {"viewed_at": utcnow()}
            # Supplied values win, missing ones keep what is stored
            for field_name, value in (
                ("price_when_viewed", price_usd),
                ("mcap_when_viewed", token_mcap),
                ("name", token_name),
                ("symbol", token_symbol),
                ("pnl_amount", pnl_amount),
                ("pnl_currency", pnl_currency),
            ):
                if value is not None:
                    updates[field_name] = value
            token = await self._store.update_token(existing.id, **updates) or existing
            is_new = False
        else:
            token = await self._store.insert_token(
                TrackedToken(
                    user_id=user_id,
                    contract_address=contract_address,
                    chain=chain,
                    symbol=token_symbol,
                    name=token_name,
                    price_when_viewed=price_usd,
                    mcap_when_viewed=token_mcap,
                    viewed_at=utcnow(),
                    source=source,
                    url=url,
                    pnl_amount=pnl_amount,
                    pnl_currency=pnl_currency,
                )
            )
            is_new = True

        bought = token.bought
        wallets = await self.wallets_for(user_id)
        if wallets and not bought:
            bought = await self._matcher.has_bought(
                contract_address, chain, wallets, token_symbol
            )
            if bought:
                token = await self._store.update_token(token.id, bought=True) or token
                logger.info(f"[TRACK] Purchase confirmed for {token_symbol or contract_address[:8]}")

        if is_new:
            self._notifier.notify(NotificationEvent.new_token(token))
        else:
            self._notifier.notify(NotificationEvent.token_updated(token))

        return ViewResult(id=token.id, bought=bought, token=token, is_new=is_new)

    async def reset_bought(self, user_id: int, token_id: int) -> TrackedToken | None:
        """The only path that clears ``bought``."""
        if await self._store.get_token(token_id, user_id) is None:
            return None
        token = await self._store.update_token(token_id, bought=False, pnl_amount=None)
        if token is not None:
            self._notifier.notify(NotificationEvent.token_updated(token))
        return token

    async def delete_token(self, user_id: int, token_id: int) -> bool:
        deleted = await self._store.delete_token(token_id, user_id)
        if deleted:
            self._notifier.notify(NotificationEvent.token_deleted(token_id, user_id))
        return deleted

    async def on_live_transaction(self, tx: LiveTransaction) -> int:
        """Mark tracked tokens bought when the live stream shows a buy."""
        marked = 0
        for change in tx.token_changes:
            if change.direction != "BUY":
                continue
            tokens = await self._store.find_unbought_by_mint(change.mint, Chain.SOLANA)
            for token in tokens:
                try:
                    updated = await self._store.update_token(token.id, bought=True)
                except Exception as e:
                    logger.error(f"[HELIUS_WS] Failed to mark {change.mint[:8]} bought: {e}")
                    continue
                if updated is None:
                    continue
                marked += 1
                logger.info(
                    f"[HELIUS_WS] Purchase detected: {updated.name or updated.symbol or change.mint[:8]}"
                )
                self._notifier.notify(NotificationEvent.token_updated(updated))
                self._notifier.notify(
                    NotificationEvent.purchase_detected(updated, tx.signature, change.ui_amount)
                )
        return marked

    async def update_wallets(self, user_id: int, wallets: dict[str, str]) -> None:
        """Persist wallet settings and re-arm the live monitor."""
        await self._store.set_setting(user_id, WALLETS_SETTING, wallets)
        if self._monitor is None or self._multi_tenant:
            return
        await self._monitor.update_wallet(wallets.get("solana") or None)

    async def sync_trades(
        self, user_id: int, tokens: list[TrackedToken] | None = None
    ) -> dict[str, int]:
        """Persist matched trades for the user's tokens, deduplicated by tx hash."""
        wallets = await self.wallets_for(user_id)
        if not wallets:
            raise WalletNotConfiguredError(f"user {user_id} has no wallets configured")
        if tokens is None:
            tokens = await self._store.list_tokens(user_id)

        synced = 0
        errors = 0
        for token in tokens:
            try:
                trades = await self._matcher.token_trades(
                    token.contract_address, token.chain, wallets
                )
                for trade in trades:
                    trade.user_id = user_id
                    if await self._store.add_trade(trade):
                        synced += 1
                        logger.debug(
                            f"[TRADES] {trade.action} {trade.quantity} "
                            f"{token.symbol or token.contract_address[:8]} for "
                            f"{trade.value_native} {trade.native_currency}"
                        )
            except Exception as e:
                errors += 1
                logger.error(f"[TRADES] Sync failed for {token.contract_address[:8]}: {e}")
            await self._sleep(self._trade_sync_delay)

        logger.info(f"[TRADES] Synced {synced} trades over {len(tokens)} tokens ({errors} errors)")
        return {"synced": synced, "errors": errors}

    async def missed_profit_report(self, user_id: int) -> dict[str, Any]:
        """Sum of missed profit at ATH, per native currency."""
        totals: dict[str, float] = {"SOL": 0.0, "ETH": 0.0, "BNB": 0.0}
        tokens_with_miss = 0
        for token in await self._store.list_tokens(user_id):
            if not token.ath_price:
                continue
            trades = await self._store.list_trades(user_id, token.contract_address, token.chain)
            result = missed_profit(trades, token.ath_price)
            missed = float(result["missed"])
            if missed <= 0:
                continue
            currency = str(result["currency"])
            totals[currency] = totals.get(currency, 0.0) + missed
            tokens_with_miss += 1
        return {
            "missed_profit": {k: round(v, 4) for k, v in totals.items()},
            "tokens": tokens_with_miss,
        }
