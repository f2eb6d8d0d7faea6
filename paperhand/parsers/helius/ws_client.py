"""Live wallet transaction monitor over Helius transactionSubscribe.

Same skeleton as the other websocket clients (ConnectionState enum, typed
callback, safe callback wrapper) but the connection lifecycle is an
explicit state machine:

    DISCONNECTED --connect()--> CONNECTING --ack--> SUBSCRIBED
    any --transport close--> DISCONNECTED (+ reconnect unless torn down)
    any --disconnect()--> DISCONNECTED (reconnect suppressed)

The heartbeat and reconnect timers are tasks owned by the monitor and are
cancelled on every exit path. One wallet is monitored at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import websockets
from loguru import logger
from pydantic import ValidationError

from paperhand.parsers.helius.models import HeliusStreamTransaction, HeliusTransactionMeta

SUBSCRIBE_REQUEST_ID = 420
NEGLIGIBLE_AMOUNT = 0.000001
MAX_BACKOFF_MULTIPLIER = 5


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


@dataclass
class TokenChange:
    mint: str
    direction: str  # "BUY" | "SELL"
    ui_amount: float
    pre_amount: float
    post_amount: float


@dataclass
class LiveTransaction:
    signature: str
    slot: int
    token_changes: list[TokenChange] = field(default_factory=list)
    fee: int = 0


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before reconnect ``attempt`` (1-based), flat after attempt 5."""
    return base_delay * min(max(attempt, 1), MAX_BACKOFF_MULTIPLIER)


def compute_token_changes(
    meta: HeliusTransactionMeta,
    wallet: str,
    *,
    threshold: float = NEGLIGIBLE_AMOUNT,
) -> list[TokenChange]:
    """Per-mint balance deltas for ``wallet`` between pre and post balances.

    A mint held before and missing afterwards is a full exit (SELL of the
    whole prior balance).
    """
    pre = {b.mint: b.ui_amount for b in meta.preTokenBalances if b.owner == wallet}
    post = {b.mint: b.ui_amount for b in meta.postTokenBalances if b.owner == wallet}

    changes: list[TokenChange] = []
    for mint, post_amount in post.items():
        pre_amount = pre.get(mint, 0.0)
        delta = post_amount - pre_amount
        if abs(delta) <= threshold:
            continue
        changes.append(
            TokenChange(
                mint=mint,
                direction="BUY" if delta > 0 else "SELL",
                ui_amount=abs(delta),
                pre_amount=pre_amount,
                post_amount=post_amount,
            )
        )

    for mint, pre_amount in pre.items():
        if mint in post or pre_amount <= threshold:
            continue
        changes.append(
            TokenChange(
                mint=mint,
                direction="SELL",
                ui_amount=pre_amount,
                pre_amount=pre_amount,
                post_amount=0.0,
            )
        )
    return changes


class HeliusTransactionMonitor:
    """Keeps one transactionSubscribe stream open for one wallet."""

    def __init__(
        self,
        ws_url: str,
        *,
        ping_interval: float = 30.0,
        reconnect_base_delay: float = 3.0,
        max_reconnect_attempts: int = 10,
        wallet_switch_grace: float = 1.0,
        connect_factory: Callable[..., Any] = websockets.connect,
    ) -> None:
        self._ws_url = ws_url
        self._ping_interval = ping_interval
        self._reconnect_base_delay = reconnect_base_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._wallet_switch_grace = wallet_switch_grace
        self._connect_factory = connect_factory

        self._state = ConnectionState.DISCONNECTED
        self._wallet: str | None = None
        self._ws: websockets.ClientConnection | None = None
        self._subscription_id: int | None = None
        self._reconnect_attempts = 0
        self._torn_down = True
        self._message_count = 0

        # State-owned timers/tasks
        self._session_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._pending_tasks: set[asyncio.Task] = set()

        self.on_transaction: Callable[[LiveTransaction], Awaitable[None]] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def wallet(self) -> str | None:
        return self._wallet

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def message_count(self) -> int:
        return self._message_count

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "wallet": self._wallet,
            "subscription_id": self._subscription_id,
            "attempts": self._reconnect_attempts,
        }

    # ── transitions ──────────────────────────────────────────────────────

    def connect(self, wallet: str) -> None:
        """DISCONNECTED -> CONNECTING. Arms reconnection for ``wallet``."""
        if not wallet:
            logger.info("[HELIUS_WS] No wallet configured, not connecting")
            return
        self._wallet = wallet
        self._torn_down = False
        self._reconnect_attempts = 0
        self._start_session()

    async def disconnect(self) -> None:
        """any -> DISCONNECTED with reconnection suppressed."""
        self._torn_down = True
        self._reconnect_attempts = self._max_reconnect_attempts
        await self._cancel(self._reconnect_task)
        self._reconnect_task = None
        await self._cancel(self._heartbeat_task)
        self._heartbeat_task = None
        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        session = self._session_task
        self._session_task = None
        if session is not None and session is not asyncio.current_task():
            await self._cancel(session)
        self._state = ConnectionState.DISCONNECTED
        self._wallet = None
        self._subscription_id = None

    async def update_wallet(self, wallet: str | None) -> None:
        """Tear down, wait the grace period, reconnect with a fresh counter."""
        if (
            wallet == self._wallet
            and not self._torn_down
            and self._state is not ConnectionState.DISCONNECTED
        ):
            return
        logger.info(f"[HELIUS_WS] Switching wallet to {(wallet or 'none')[:8]}...")
        await self.disconnect()
        if not wallet:
            return
        await asyncio.sleep(self._wallet_switch_grace)
        self.connect(wallet)

    # ── session ──────────────────────────────────────────────────────────

    def _start_session(self) -> None:
        self._state = ConnectionState.CONNECTING
        self._session_task = asyncio.create_task(self._run_session(), name="helius_ws_session")

    async def _run_session(self) -> None:
        wallet = self._wallet
        logger.info(f"[HELIUS_WS] Connecting to monitor wallet {(wallet or '')[:8]}...")
        try:
            async with self._connect_factory(
                self._ws_url,
                ping_interval=None,  # heartbeat is ours
                close_timeout=5,
            ) as ws:
                self._ws = ws
                await self._subscribe(ws, wallet)
                async for message in ws:
                    await self._handle_message(message)
        except asyncio.CancelledError:
            raise
        except (websockets.ConnectionClosed, ConnectionError, OSError, TimeoutError) as e:
            logger.warning(f"[HELIUS_WS] Transport closed: {e}")
        except Exception as e:
            logger.error(f"[HELIUS_WS] Session error: {e}")
        self._on_transport_closed()

    async def _subscribe(self, ws: Any, wallet: str | None) -> None:
        request = {
            "jsonrpc": "2.0",
            "id": SUBSCRIBE_REQUEST_ID,
            "method": "transactionSubscribe",
            "params": [
                {"accountInclude": [wallet], "failed": False},
                {
                    "commitment": "confirmed",
                    "encoding": "jsonParsed",
                    "transactionDetails": "full",
                    "showRewards": False,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        }
        await ws.send(json.dumps(request))

    def _on_subscription_ack(self, subscription_id: int) -> None:
        """CONNECTING -> SUBSCRIBED."""
        self._subscription_id = subscription_id
        self._state = ConnectionState.SUBSCRIBED
        self._reconnect_attempts = 0
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
        self._heartbeat_task = asyncio.create_task(self._heartbeat(), name="helius_ws_heartbeat")
        logger.info(f"[HELIUS_WS] Subscribed, id={subscription_id}")

    async def _on_subscription_error(self, error: Any) -> None:
        """Rejected subscribe: close the socket so the reconnect path runs."""
        logger.warning(f"[HELIUS_WS] Subscription rejected: {error}")
        ws = self._ws
        if ws is not None:
            await ws.close()

    def _on_transport_closed(self) -> None:
        """any -> DISCONNECTED; schedules a reconnect unless torn down."""
        self._state = ConnectionState.DISCONNECTED
        self._ws = None
        self._subscription_id = None
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if self._torn_down:
            return
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> float | None:
        """Arm the reconnect timer. Returns the delay, or None when giving up."""
        if self._reconnect_attempts >= self._max_reconnect_attempts:
            logger.error(
                f"[HELIUS_WS] Max reconnect attempts ({self._max_reconnect_attempts}) reached"
            )
            return None
        self._reconnect_attempts += 1
        delay = backoff_delay(self._reconnect_base_delay, self._reconnect_attempts)
        logger.info(
            f"[HELIUS_WS] Reconnecting in {delay:.1f}s "
            f"(attempt {self._reconnect_attempts}/{self._max_reconnect_attempts})"
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay), name="helius_ws_reconnect"
        )
        return delay

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if self._torn_down or not self._wallet:
            return
        self._start_session()

    async def _heartbeat(self) -> None:
        while self._state is ConnectionState.SUBSCRIBED:
            await asyncio.sleep(self._ping_interval)
            ws = self._ws
            if ws is None:
                return
            try:
                await ws.ping()
            except Exception as e:
                logger.debug(f"[HELIUS_WS] Ping failed: {e}")
                return

    # ── inbound frames ───────────────────────────────────────────────────

    async def _handle_message(self, message: str | bytes) -> None:
        self._message_count += 1
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            return
        if not isinstance(data, dict):
            return

        if data.get("id") == SUBSCRIBE_REQUEST_ID:
            if "error" in data:
                await self._on_subscription_error(data["error"])
            elif "result" in data:
                self._on_subscription_ack(data["result"])
            return

        if data.get("method") != "transactionNotification":
            return

        value = (data.get("params") or {}).get("result")
        if not value:
            return
        try:
            tx = HeliusStreamTransaction.model_validate(value)
        except ValidationError as e:
            logger.debug(f"[HELIUS_WS] Bad notification: {e}")
            return
        if tx.meta is None or not self._wallet:
            return

        changes = compute_token_changes(tx.meta, self._wallet)
        if not changes:
            return
        for change in changes:
            logger.info(
                f"[HELIUS_WS] {change.direction} {change.ui_amount} of {change.mint[:8]}... "
                f"in {tx.signature[:16]}..."
            )
        if self.on_transaction:
            event = LiveTransaction(
                signature=tx.signature,
                slot=tx.slot,
                token_changes=changes,
                fee=tx.meta.fee,
            )
            task = asyncio.create_task(self._safe_callback(self.on_transaction, event))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)

    async def _safe_callback(
        self, callback: Callable[..., Awaitable[None]], event: object
    ) -> None:
        """Execute callback with error handling and timeout."""
        try:
            await asyncio.wait_for(callback(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(f"[HELIUS_WS] Callback timed out for {type(event).__name__}")
        except Exception as e:
            logger.error(f"[HELIUS_WS] Callback error: {e}")

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
