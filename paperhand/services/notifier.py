"""Fan-out of engine events to live dashboard channels.

Each open channel (one SSE connection) is tagged with the user id resolved
at connect time. In multi-tenant mode a broadcast only reaches channels of
the owning user; in local single-user mode every channel gets everything.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel

from paperhand.tracking_types import TrackedToken

CHANNEL_QUEUE_SIZE = 256


class EventName(str, Enum):
    CONNECTED = "connected"
    NEW_TOKEN = "new-token"
    TOKEN_UPDATED = "token-updated"
    TOKEN_DELETED = "token-deleted"
    PURCHASE_DETECTED = "purchase-detected"


@dataclass
class NotificationEvent:
    name: EventName
    payload: Any
    owner_user_id: int | None = None

    @classmethod
    def new_token(cls, token: TrackedToken) -> NotificationEvent:
        return cls(EventName.NEW_TOKEN, token, token.user_id)

    @classmethod
    def token_updated(cls, token: TrackedToken) -> NotificationEvent:
        return cls(EventName.TOKEN_UPDATED, token, token.user_id)

    @classmethod
    def token_deleted(cls, token_id: int, owner_user_id: int) -> NotificationEvent:
        return cls(EventName.TOKEN_DELETED, {"id": token_id}, owner_user_id)

    @classmethod
    def purchase_detected(
        cls, token: TrackedToken, signature: str, amount: float
    ) -> NotificationEvent:
        payload = {"token": token, "transaction": signature, "amount": amount}
        return cls(EventName.PURCHASE_DETECTED, payload, token.user_id)


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    return value


def format_sse(event: str, payload: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(_jsonable(payload))}\n\n"


class ClientChannel(Protocol):
    def write(self, frame: str) -> None:
        """Deliver one frame; raise if the client can no longer receive."""

    def close(self) -> None:
        """Stop delivery; the transport ends the stream once drained."""


class QueueChannel:
    """Channel backed by a bounded queue drained by the streaming response."""

    def __init__(self, maxsize: int = CHANNEL_QUEUE_SIZE) -> None:
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def write(self, frame: str) -> None:
        if self.closed:
            raise ConnectionError("channel closed")
        self.queue.put_nowait(frame)  # QueueFull -> slow client gets dropped

    def close(self) -> None:
        self.closed = True


@dataclass
class _Registration:
    channel: ClientChannel
    user_id: int | None


class Notifier:
    def __init__(self, *, multi_tenant: bool = False) -> None:
        self._multi_tenant = multi_tenant
        self._channels: dict[int, _Registration] = {}
        self._ids = itertools.count(1)

    @property
    def multi_tenant(self) -> bool:
        return self._multi_tenant

    def __len__(self) -> int:
        return len(self._channels)

    def register(self, channel: ClientChannel, user_id: int | None) -> int:
        conn_id = next(self._ids)
        self._channels[conn_id] = _Registration(channel=channel, user_id=user_id)
        logger.info(f"[SSE] Client {conn_id} connected (user={user_id}, total={len(self)})")
        return conn_id

    def unregister(self, conn_id: int) -> None:
        if self._channels.pop(conn_id, None) is not None:
            logger.info(f"[SSE] Client {conn_id} disconnected (total={len(self)})")

    def _accepts(self, registration: _Registration, owner_user_id: int | None) -> bool:
        if not self._multi_tenant:
            return True
        # Untagged events have no owner to route to in multi-tenant mode
        return owner_user_id is not None and registration.user_id == owner_user_id

    def broadcast(self, event: EventName | str, payload: Any, owner_user_id: int | None) -> int:
        """Write to every matching channel; failed channels are removed."""
        name = event.value if isinstance(event, EventName) else event
        frame = format_sse(name, payload)
        delivered = 0
        for conn_id, registration in list(self._channels.items()):
            if not self._accepts(registration, owner_user_id):
                continue
            try:
                registration.channel.write(frame)
                delivered += 1
            except Exception as e:
                logger.debug(f"[SSE] Dropping client {conn_id}: {type(e).__name__}")
                self._channels.pop(conn_id, None)
                registration.channel.close()
        return delivered

    def notify(self, event: NotificationEvent) -> int:
        return self.broadcast(event.name, event.payload, event.owner_user_id)
