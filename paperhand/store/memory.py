"""Dict-backed TrackerStore for tests and ephemeral local runs."""

from __future__ import annotations

import itertools
from datetime import date, datetime
from typing import Any

from paperhand.chains import Chain
from paperhand.store.base import check_token_fields
from paperhand.tracking_types import PriceSnapshot, Trade, TrackedToken
from paperhand.utils.clock import day_bounds, utcnow


class InMemoryStore:
    def __init__(self) -> None:
        self._tokens: dict[int, TrackedToken] = {}
        self._snapshots: dict[int, list[PriceSnapshot]] = {}
        self._trades: dict[str, Trade] = {}
        self._settings: dict[tuple[int, str], Any] = {}
        self._ids = itertools.count(1)

    def _with_price(self, token: TrackedToken) -> TrackedToken:
        latest = self._latest(token.id)
        return token.model_copy(
            update={
                "current_price": latest.price if latest else None,
                "current_mcap": latest.mcap if latest else None,
            }
        )

    def _latest(self, token_id: int | None) -> PriceSnapshot | None:
        history = self._snapshots.get(token_id or 0)
        return history[-1] if history else None

    async def find_todays_token(
        self, user_id: int, contract: str, chain: Chain, today: date
    ) -> TrackedToken | None:
        start, end = day_bounds(today)
        for token in self._tokens.values():
            if (
                token.user_id == user_id
                and token.contract_address == contract
                and token.chain == chain
                and token.viewed_at is not None
                and start <= token.viewed_at < end
            ):
                return self._with_price(token)
        return None

    async def insert_token(self, token: TrackedToken) -> TrackedToken:
        stored = token.model_copy(
            update={
                "id": next(self._ids),
                "viewed_at": token.viewed_at or utcnow(),
                "current_price": None,
                "current_mcap": None,
            }
        )
        self._tokens[stored.id] = stored
        return self._with_price(stored)

    async def update_token(self, token_id: int, **fields: Any) -> TrackedToken | None:
        check_token_fields(fields)
        token = self._tokens.get(token_id)
        if token is None:
            return None
        updated = token.model_copy(update=fields)
        self._tokens[token_id] = updated
        return self._with_price(updated)

    async def get_token(self, token_id: int, user_id: int | None = None) -> TrackedToken | None:
        token = self._tokens.get(token_id)
        if token is None or (user_id is not None and token.user_id != user_id):
            return None
        return self._with_price(token)

    async def delete_token(self, token_id: int, user_id: int | None = None) -> bool:
        token = self._tokens.get(token_id)
        if token is None or (user_id is not None and token.user_id != user_id):
            return False
        del self._tokens[token_id]
        self._snapshots.pop(token_id, None)
        return True

    async def list_recent_tokens(self, since: datetime) -> list[TrackedToken]:
        return [
            self._with_price(t)
            for t in self._tokens.values()
            if t.viewed_at is not None and t.viewed_at > since
        ]

    async def list_tokens(self, user_id: int, bought: bool | None = None) -> list[TrackedToken]:
        tokens = [
            t
            for t in self._tokens.values()
            if t.user_id == user_id and (bought is None or t.bought == bought)
        ]
        tokens.sort(key=lambda t: t.viewed_at or datetime.min, reverse=True)
        return [self._with_price(t) for t in tokens]

    async def find_unbought_by_mint(self, mint: str, chain: Chain) -> list[TrackedToken]:
        return [
            self._with_price(t)
            for t in self._tokens.values()
            if t.contract_address == mint and t.chain == chain and not t.bought
        ]

    async def add_price_snapshot(self, snapshot: PriceSnapshot) -> None:
        stored = snapshot.model_copy(update={"checked_at": snapshot.checked_at or utcnow()})
        self._snapshots.setdefault(snapshot.token_id, []).append(stored)

    async def latest_price_snapshot(self, token_id: int) -> PriceSnapshot | None:
        return self._latest(token_id)

    def price_history(self, token_id: int) -> list[PriceSnapshot]:
        return list(self._snapshots.get(token_id, []))

    async def add_trade(self, trade: Trade) -> bool:
        if trade.tx_hash in self._trades:
            return False
        self._trades[trade.tx_hash] = trade
        return True

    async def list_trades(self, user_id: int, contract: str, chain: Chain) -> list[Trade]:
        trades = [
            t
            for t in self._trades.values()
            if t.user_id == user_id and t.contract_address == contract and t.chain == chain
        ]
        trades.sort(key=lambda t: t.traded_at or datetime.min)
        return trades

    async def get_setting(self, user_id: int, key: str) -> Any | None:
        return self._settings.get((user_id, key))

    async def set_setting(self, user_id: int, key: str, value: Any) -> None:
        self._settings[(user_id, key)] = value
