"""SQLAlchemy-backed TrackerStore (SQLite locally, Postgres hosted)."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperhand.chains import Chain
from paperhand.errors import StoreError
from paperhand.models import PriceHistoryRow, SettingRow, TrackedTokenRow, TradeRow
from paperhand.store.base import check_token_fields
from paperhand.tracking_types import PriceSnapshot, Trade, TrackedToken
from paperhand.utils.clock import day_bounds, utcnow


def _sanitize(val: str | None) -> str | None:
    """Strip null bytes that PostgreSQL rejects."""
    if val is None:
        return None
    return val.replace("\x00", "").strip() or None


class SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"[STORE] {type(e).__name__}: {e}")
                raise StoreError(str(e)) from e

    async def _attach_prices(
        self, session: AsyncSession, rows: Sequence[TrackedTokenRow]
    ) -> list[TrackedToken]:
        """Convert rows, joining each one's latest price snapshot."""
        if not rows:
            return []
        ids = [row.id for row in rows]
        latest_ids = (
            select(func.max(PriceHistoryRow.id))
            .where(PriceHistoryRow.token_id.in_(ids))
            .group_by(PriceHistoryRow.token_id)
        )
        result = await session.execute(
            select(PriceHistoryRow).where(PriceHistoryRow.id.in_(latest_ids))
        )
        latest = {snap.token_id: snap for snap in result.scalars()}

        tokens = []
        for row in rows:
            token = TrackedToken.model_validate(row)
            snap = latest.get(row.id)
            if snap is not None:
                token.current_price = snap.price
                token.current_mcap = snap.mcap
            tokens.append(token)
        return tokens

    async def find_todays_token(
        self, user_id: int, contract: str, chain: Chain, today: date
    ) -> TrackedToken | None:
        start, end = day_bounds(today)
        async with self._session() as session:
            result = await session.execute(
                select(TrackedTokenRow)
                .where(
                    TrackedTokenRow.user_id == user_id,
                    TrackedTokenRow.contract_address == contract,
                    TrackedTokenRow.chain == chain.value,
                    TrackedTokenRow.viewed_at >= start,
                    TrackedTokenRow.viewed_at < end,
                )
                .order_by(TrackedTokenRow.id)
                .limit(1)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return (await self._attach_prices(session, [row]))[0]

    async def insert_token(self, token: TrackedToken) -> TrackedToken:
        values = token.model_dump(exclude={"id", "current_price", "current_mcap"})
        values["chain"] = token.chain.value
        values["symbol"] = _sanitize(token.symbol)
        values["name"] = _sanitize(token.name)
        values["viewed_at"] = token.viewed_at or utcnow()
        async with self._session() as session:
            row = TrackedTokenRow(**values)
            session.add(row)
            await session.flush()
            return TrackedToken.model_validate(row)

    async def update_token(self, token_id: int, **fields: Any) -> TrackedToken | None:
        check_token_fields(fields)
        async with self._session() as session:
            row = await session.get(TrackedTokenRow, token_id)
            if row is None:
                return None
            for name, value in fields.items():
                if name in ("symbol", "name"):
                    value = _sanitize(value)
                setattr(row, name, value)
            await session.flush()
            return (await self._attach_prices(session, [row]))[0]

    async def get_token(self, token_id: int, user_id: int | None = None) -> TrackedToken | None:
        async with self._session() as session:
            row = await session.get(TrackedTokenRow, token_id)
            if row is None or (user_id is not None and row.user_id != user_id):
                return None
            return (await self._attach_prices(session, [row]))[0]

    async def delete_token(self, token_id: int, user_id: int | None = None) -> bool:
        async with self._session() as session:
            row = await session.get(TrackedTokenRow, token_id)
            if row is None or (user_id is not None and row.user_id != user_id):
                return False
            await session.execute(
                delete(PriceHistoryRow).where(PriceHistoryRow.token_id == token_id)
            )
            await session.delete(row)
            return True

    async def list_recent_tokens(self, since: datetime) -> list[TrackedToken]:
        async with self._session() as session:
            result = await session.execute(
                select(TrackedTokenRow)
                .where(TrackedTokenRow.viewed_at > since)
                .order_by(TrackedTokenRow.id)
            )
            return await self._attach_prices(session, result.scalars().all())

    async def list_tokens(self, user_id: int, bought: bool | None = None) -> list[TrackedToken]:
        stmt = select(TrackedTokenRow).where(TrackedTokenRow.user_id == user_id)
        if bought is not None:
            stmt = stmt.where(TrackedTokenRow.bought.is_(bought))
        stmt = stmt.order_by(TrackedTokenRow.viewed_at.desc())
        async with self._session() as session:
            result = await session.execute(stmt)
            return await self._attach_prices(session, result.scalars().all())

    async def find_unbought_by_mint(self, mint: str, chain: Chain) -> list[TrackedToken]:
        async with self._session() as session:
            result = await session.execute(
                select(TrackedTokenRow).where(
                    TrackedTokenRow.contract_address == mint,
                    TrackedTokenRow.chain == chain.value,
                    TrackedTokenRow.bought.is_(False),
                )
            )
            return await self._attach_prices(session, result.scalars().all())

    async def add_price_snapshot(self, snapshot: PriceSnapshot) -> None:
        async with self._session() as session:
            session.add(
                PriceHistoryRow(
                    token_id=snapshot.token_id,
                    price=snapshot.price,
                    mcap=snapshot.mcap,
                    price_change_24h=snapshot.price_change_24h,
                    volume_24h=snapshot.volume_24h,
                    checked_at=snapshot.checked_at or utcnow(),
                )
            )

    async def latest_price_snapshot(self, token_id: int) -> PriceSnapshot | None:
        async with self._session() as session:
            result = await session.execute(
                select(PriceHistoryRow)
                .where(PriceHistoryRow.token_id == token_id)
                .order_by(PriceHistoryRow.checked_at.desc(), PriceHistoryRow.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return PriceSnapshot.model_validate(row) if row else None

    async def add_trade(self, trade: Trade) -> bool:
        async with self._session() as session:
            existing = await session.execute(
                select(TradeRow.id).where(TradeRow.tx_hash == trade.tx_hash)
            )
            if existing.scalar_one_or_none() is not None:
                return False
            values = trade.model_dump()
            values["chain"] = trade.chain.value
            session.add(TradeRow(**values))
            return True

    async def list_trades(self, user_id: int, contract: str, chain: Chain) -> list[Trade]:
        async with self._session() as session:
            result = await session.execute(
                select(TradeRow)
                .where(
                    TradeRow.user_id == user_id,
                    TradeRow.contract_address == contract,
                    TradeRow.chain == chain.value,
                )
                .order_by(TradeRow.traded_at)
            )
            return [Trade.model_validate(row) for row in result.scalars()]

    async def get_setting(self, user_id: int, key: str) -> Any | None:
        async with self._session() as session:
            result = await session.execute(
                select(SettingRow.value).where(SettingRow.user_id == user_id, SettingRow.key == key)
            )
            raw = result.scalar_one_or_none()
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    async def set_setting(self, user_id: int, key: str, value: Any) -> None:
        encoded = value if isinstance(value, str) else json.dumps(value)
        async with self._session() as session:
            result = await session.execute(
                select(SettingRow).where(SettingRow.user_id == user_id, SettingRow.key == key)
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(SettingRow(user_id=user_id, key=key, value=encoded))
            else:
                row.value = encoded
