"""Abstract read/write store the engine persists through.

The engine never assumes a storage engine; ``SqlStore`` and
``InMemoryStore`` (used when no database is configured) are the two
implementations shipped here.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Protocol

from paperhand.chains import Chain
from paperhand.tracking_types import PriceSnapshot, Trade, TrackedToken

WALLETS_SETTING = "wallets"

# Fields the engine may change on an existing token row
UPDATABLE_TOKEN_FIELDS = frozenset(
    {
        "symbol",
        "name",
        "price_when_viewed",
        "mcap_when_viewed",
        "viewed_at",
        "source",
        "url",
        "bought",
        "pnl_amount",
        "pnl_currency",
        "ath_price",
        "ath_mcap",
        "ath_date",
        "dev_dump_detected",
        "dev_dump_percent",
        "dev_dump_date",
    }
)


def check_token_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_TOKEN_FIELDS
    if unknown:
        raise ValueError(f"Not updatable token fields: {sorted(unknown)}")


class TrackerStore(Protocol):
    async def find_todays_token(
        self, user_id: int, contract: str, chain: Chain, today: date
    ) -> TrackedToken | None: ...

    async def insert_token(self, token: TrackedToken) -> TrackedToken: ...

    async def update_token(self, token_id: int, **fields: Any) -> TrackedToken | None: ...

    async def get_token(self, token_id: int, user_id: int | None = None) -> TrackedToken | None: ...

    async def delete_token(self, token_id: int, user_id: int | None = None) -> bool: ...

    async def list_recent_tokens(self, since: datetime) -> list[TrackedToken]: ...

    async def list_tokens(
        self, user_id: int, bought: bool | None = None
    ) -> list[TrackedToken]: ...

    async def find_unbought_by_mint(self, mint: str, chain: Chain) -> list[TrackedToken]: ...

    async def add_price_snapshot(self, snapshot: PriceSnapshot) -> None: ...

    async def latest_price_snapshot(self, token_id: int) -> PriceSnapshot | None: ...

    async def add_trade(self, trade: Trade) -> bool: ...

    async def list_trades(self, user_id: int, contract: str, chain: Chain) -> list[Trade]: ...

    async def get_setting(self, user_id: int, key: str) -> Any | None: ...

    async def set_setting(self, user_id: int, key: str, value: Any) -> None: ...
