"""Periodic and bulk jobs: price sweep, purchase recheck, PnL refresh.

Jobs process tokens one at a time and never share locks; overlapping runs
only cost redundant fetches because every cache underneath is TTL-bounded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from paperhand.errors import WalletNotConfiguredError
from paperhand.services.holder_tracker import DumpResult, HolderStateStore, HolderTracker
from paperhand.services.notifier import NotificationEvent, Notifier
from paperhand.services.price_oracle import PriceOracle
from paperhand.services.wallet_matcher import WalletMatcher
from paperhand.store.base import WALLETS_SETTING, TrackerStore
from paperhand.tracking_types import PriceSnapshot, TrackedToken
from paperhand.utils.clock import utcnow


@dataclass
class SweepStats:
    checked: int = 0
    snapshots: int = 0
    ath_updates: int = 0
    dev_dumps: int = 0
    errors: int = 0


@dataclass
class BatchStats:
    checked: int = 0
    updated: int = 0
    errors: int = 0


class PollScheduler:
    def __init__(
        self,
        store: TrackerStore,
        oracle: PriceOracle,
        holder_tracker: HolderTracker,
        matcher: WalletMatcher,
        notifier: Notifier,
        *,
        holder_states: HolderStateStore | None = None,
        sweep_interval: float = 900.0,
        lookback_days: int = 7,
        sweep_item_delay: float = 0.2,
        recheck_item_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._holders = holder_tracker
        self._matcher = matcher
        self._notifier = notifier
        self._holder_states = holder_states or HolderStateStore()
        self._sweep_interval = sweep_interval
        self._lookback = timedelta(days=lookback_days)
        self._sweep_item_delay = sweep_item_delay
        self._recheck_item_delay = recheck_item_delay
        self._sleep = sleep
        self._now = now

    @property
    def holder_states(self) -> HolderStateStore:
        return self._holder_states

    # ── price sweep ──────────────────────────────────────────────────────

    async def price_sweep(self) -> SweepStats:
        """Snapshot prices, track ATH and check holders for recent tokens."""
        stats = SweepStats()
        tokens = await self._store.list_recent_tokens(self._now() - self._lookback)
        logger.info(f"[SWEEP] Updating prices for {len(tokens)} tokens")

        # Several users can track the same mint; diff its holders once per sweep
        dumps: dict[str, DumpResult] = {}
        for token in tokens:
            stats.checked += 1
            try:
                await self._sweep_token(token, stats, dumps)
            except Exception as e:
                stats.errors += 1
                logger.error(f"[SWEEP] Failed to update {token.contract_address[:8]}: {e}")
            await self._sleep(self._sweep_item_delay)

        logger.info(
            f"[SWEEP] {stats.checked} tokens, {stats.snapshots} snapshots, "
            f"{stats.ath_updates} ATH, {stats.dev_dumps} dev dumps, {stats.errors} errors"
        )
        return stats

    async def _sweep_token(
        self, token: TrackedToken, stats: SweepStats, dumps: dict[str, DumpResult]
    ) -> None:
        price = await self._oracle.get_price(token.contract_address, token.chain)
        if price is None:
            return

        await self._store.add_price_snapshot(
            PriceSnapshot(
                token_id=token.id,
                price=price.price_usd,
                mcap=price.mcap,
                price_change_24h=price.price_change_24h,
                volume_24h=price.volume_24h,
                checked_at=self._now(),
            )
        )
        stats.snapshots += 1

        updates: dict = {}
        current_price = price.price_usd or 0.0
        if current_price > (token.ath_price or 0.0):
            updates.update(ath_price=current_price, ath_mcap=price.mcap, ath_date=self._now())
            stats.ath_updates += 1

        if token.chain.info.holder_introspection:
            mint = token.contract_address
            dump = dumps.get(mint)
            if dump is None:
                dump = await self._holders.detect_dump(
                    mint, token.chain, self._holder_states.get(mint)
                )
                if dump.current_state is not None:
                    self._holder_states.put(mint, dump.current_state)
                dumps[mint] = dump
            if dump.detected:
                updates.update(
                    dev_dump_detected=True,
                    dev_dump_percent=round(dump.percent, 2),
                    dev_dump_date=self._now(),
                )
                stats.dev_dumps += 1

        if updates:
            updated = await self._store.update_token(token.id, **updates)
        else:
            updated = await self._store.get_token(token.id)
        if updated is not None:
            self._notifier.notify(NotificationEvent.token_updated(updated))

    async def run_price_sweep_loop(self, initial_delay: float = 5.0) -> None:
        """First sweep shortly after startup, then every sweep interval."""
        await self._sleep(initial_delay)
        while True:
            try:
                await self.price_sweep()
            except Exception as e:
                logger.error(f"[SWEEP] Sweep aborted: {e}")
            await self._sleep(self._sweep_interval)

    # ── wallet jobs ──────────────────────────────────────────────────────

    async def _wallets(self, user_id: int) -> dict[str, str]:
        wallets = await self._store.get_setting(user_id, WALLETS_SETTING)
        if not isinstance(wallets, dict) or not wallets:
            raise WalletNotConfiguredError(f"user {user_id} has no wallets configured")
        return wallets

    async def recheck_purchases(self, user_id: int) -> BatchStats:
        """has_bought() for every not-yet-bought token of the user."""
        wallets = await self._wallets(user_id)
        tokens = await self._store.list_tokens(user_id, bought=False)
        stats = BatchStats()
        logger.info(f"[RECHECK] Checking {len(tokens)} tokens")

        for token in tokens:
            stats.checked += 1
            try:
                hint = token.symbol_hint
                if await self._matcher.has_bought(token.contract_address, token.chain, wallets, hint):
                    pnl = await self._matcher.pnl(token.contract_address, token.chain, wallets, hint)
                    updated = await self._store.update_token(
                        token.id, bought=True, pnl_amount=pnl.amount, pnl_currency=pnl.currency
                    )
                    stats.updated += 1
                    if updated is not None:
                        self._notifier.notify(NotificationEvent.token_updated(updated))
            except Exception as e:
                stats.errors += 1
                logger.error(f"[RECHECK] Failed on {token.contract_address[:8]}: {e}")
            await self._sleep(self._recheck_item_delay)

        logger.info(f"[RECHECK] {stats.checked} checked, {stats.updated} newly bought")
        return stats

    async def refresh_pnl(self, user_id: int) -> BatchStats:
        """Recompute PnL for every bought token of the user."""
        wallets = await self._wallets(user_id)
        tokens = await self._store.list_tokens(user_id, bought=True)
        stats = BatchStats()

        for token in tokens:
            stats.checked += 1
            try:
                pnl = await self._matcher.pnl(
                    token.contract_address, token.chain, wallets, token.symbol_hint
                )
                if pnl.amount is not None:
                    updated = await self._store.update_token(
                        token.id, pnl_amount=pnl.amount, pnl_currency=pnl.currency
                    )
                    stats.updated += 1
                    if updated is not None:
                        self._notifier.notify(NotificationEvent.token_updated(updated))
            except Exception as e:
                stats.errors += 1
                logger.error(f"[PNL] Refresh failed on {token.contract_address[:8]}: {e}")
            await self._sleep(self._recheck_item_delay)

        logger.info(f"[PNL] {stats.checked} checked, {stats.updated} updated")
        return stats
