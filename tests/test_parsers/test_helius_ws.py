"""Tests for the live transaction monitor state machine."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from paperhand.parsers.helius.models import HeliusStreamTransaction, HeliusTransactionMeta
from paperhand.parsers.helius.ws_client import (
    SUBSCRIBE_REQUEST_ID,
    ConnectionState,
    HeliusTransactionMonitor,
    LiveTransaction,
    backoff_delay,
    compute_token_changes,
)

WALLET = "MyWalletAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"

# ── Fixtures ──────────────────────────────────────────────────────────────


class FakeWebSocket:
    """Scripted connection: frames pushed onto ``incoming``, None closes."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.incoming: asyncio.Queue[str | None] = asyncio.Queue()
        self.pings = 0
        self.closed = False

    async def __aenter__(self) -> FakeWebSocket:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.closed = True

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def ping(self) -> None:
        self.pings += 1

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(None)

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str:
        message = await self.incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeConnector:
    def __init__(self) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


def _balance(mint: str, owner: str, amount: float | None) -> dict:
    return {"accountIndex": 1, "mint": mint, "owner": owner, "uiTokenAmount": {"uiAmount": amount}}


def _meta(pre: list[dict], post: list[dict]) -> HeliusTransactionMeta:
    return HeliusTransactionMeta.model_validate(
        {"fee": 5000, "preTokenBalances": pre, "postTokenBalances": post}
    )


def _ack(sub_id: int = 777) -> str:
    return json.dumps({"jsonrpc": "2.0", "id": SUBSCRIBE_REQUEST_ID, "result": sub_id})


def _notification(pre: list[dict], post: list[dict], signature: str = "sig" * 10) -> str:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "method": "transactionNotification",
            "params": {
                "subscription": 777,
                "result": {
                    "signature": signature,
                    "slot": 321,
                    "transaction": {
                        "transaction": {"signatures": [signature]},
                        "meta": {"fee": 5000, "preTokenBalances": pre, "postTokenBalances": post},
                    },
                },
            },
        }
    )


async def _until(condition, rounds: int = 200) -> None:
    for _ in range(rounds):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def _monitor(connector: FakeConnector, **kwargs: Any) -> HeliusTransactionMonitor:
    defaults: dict[str, Any] = dict(
        ping_interval=60.0,
        reconnect_base_delay=100.0,
        max_reconnect_attempts=3,
        wallet_switch_grace=0.0,
        connect_factory=connector,
    )
    defaults.update(kwargs)
    return HeliusTransactionMonitor("wss://example.invalid/?api-key=k", **defaults)


# ── Pure functions ────────────────────────────────────────────────────────


class TestBackoff:
    def test_non_decreasing_and_capped(self) -> None:
        delays = [backoff_delay(3.0, attempt) for attempt in range(1, 11)]
        assert delays[:5] == [3.0, 6.0, 9.0, 12.0, 15.0]
        assert all(a <= b for a, b in zip(delays, delays[1:]))
        assert set(delays[4:]) == {15.0}


class TestComputeTokenChanges:
    def test_buy(self) -> None:
        meta = _meta([], [_balance("MintA", WALLET, 1500.0)])
        [change] = compute_token_changes(meta, WALLET)
        assert change.mint == "MintA"
        assert change.direction == "BUY"
        assert change.ui_amount == 1500.0
        assert change.pre_amount == 0.0

    def test_partial_sell(self) -> None:
        meta = _meta([_balance("MintA", WALLET, 100.0)], [_balance("MintA", WALLET, 40.0)])
        [change] = compute_token_changes(meta, WALLET)
        assert change.direction == "SELL"
        assert change.ui_amount == pytest.approx(60.0)

    def test_full_exit_when_absent_after(self) -> None:
        """Mint held before and missing afterwards is a SELL of everything."""
        meta = _meta([_balance("MintA", WALLET, 250.0)], [])
        [change] = compute_token_changes(meta, WALLET)
        assert change.direction == "SELL"
        assert change.ui_amount == 250.0
        assert change.post_amount == 0.0

    def test_other_owners_ignored(self) -> None:
        meta = _meta([], [_balance("MintA", "SomeoneElse", 10.0)])
        assert compute_token_changes(meta, WALLET) == []

    def test_negligible_dropped(self) -> None:
        meta = _meta([_balance("MintA", WALLET, 1.0)], [_balance("MintA", WALLET, 1.0000001)])
        assert compute_token_changes(meta, WALLET) == []

    def test_null_ui_amount_is_zero(self) -> None:
        meta = _meta([_balance("MintA", WALLET, None)], [_balance("MintA", WALLET, 5.0)])
        [change] = compute_token_changes(meta, WALLET)
        assert change.direction == "BUY"
        assert change.ui_amount == 5.0


class TestStreamTransactionModel:
    def test_helius_shape(self) -> None:
        payload = json.loads(_notification([], [_balance("M", WALLET, 1.0)], "abc"))
        tx = HeliusStreamTransaction.model_validate(payload["params"]["result"])
        assert tx.signature == "abc"
        assert tx.slot == 321
        assert tx.meta.fee == 5000

    def test_value_wrapped_shape(self) -> None:
        tx = HeliusStreamTransaction.model_validate(
            {"value": {"slot": 9, "transaction": {"signatures": ["xyz"]}, "meta": {"fee": 1}}}
        )
        assert tx.signature == "xyz"
        assert tx.slot == 9
        assert tx.meta.fee == 1


# ── State machine ─────────────────────────────────────────────────────────


class TestMonitorLifecycle:
    @pytest.mark.asyncio
    async def test_connect_subscribe_ack(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)

        monitor.connect(WALLET)
        assert monitor.state is ConnectionState.CONNECTING
        await _until(lambda: connector.sockets and connector.sockets[0].sent)

        ws = connector.sockets[0]
        request = ws.sent[0]
        assert request["method"] == "transactionSubscribe"
        assert request["params"][0]["accountInclude"] == [WALLET]
        assert request["params"][1]["commitment"] == "confirmed"
        assert request["params"][1]["transactionDetails"] == "full"
        assert connector.calls[0][1]["ping_interval"] is None

        ws.incoming.put_nowait(_ack(555))
        await _until(lambda: monitor.state is ConnectionState.SUBSCRIBED)
        assert monitor.status() == {
            "state": "subscribed",
            "wallet": WALLET,
            "subscription_id": 555,
            "attempts": 0,
        }

        await monitor.disconnect()

    @pytest.mark.asyncio
    async def test_transaction_reaches_callback(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)
        received: list[LiveTransaction] = []

        async def on_tx(tx: LiveTransaction) -> None:
            received.append(tx)

        monitor.on_transaction = on_tx
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)
        ws = connector.sockets[0]
        ws.incoming.put_nowait(_ack())
        ws.incoming.put_nowait(_notification([], [_balance("MintA", WALLET, 42.0)], "sigABC"))

        await _until(lambda: received)
        assert received[0].signature == "sigABC"
        assert received[0].slot == 321
        assert received[0].fee == 5000
        assert [(c.mint, c.direction) for c in received[0].token_changes] == [("MintA", "BUY")]

        await monitor.disconnect()

    @pytest.mark.asyncio
    async def test_callback_error_does_not_kill_monitor(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)
        calls = 0

        async def bad(tx: LiveTransaction) -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("handler bug")

        monitor.on_transaction = bad
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)
        ws = connector.sockets[0]
        ws.incoming.put_nowait(_ack())
        ws.incoming.put_nowait(_notification([], [_balance("MintA", WALLET, 1.0)]))
        ws.incoming.put_nowait(_notification([], [_balance("MintB", WALLET, 1.0)]))

        await _until(lambda: calls == 2)
        assert monitor.state is ConnectionState.SUBSCRIBED

        await monitor.disconnect()

    @pytest.mark.asyncio
    async def test_heartbeat_pings_while_subscribed(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector, ping_interval=0.001)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)
        ws = connector.sockets[0]
        ws.incoming.put_nowait(_ack())

        for _ in range(100):
            if ws.pings:
                break
            await asyncio.sleep(0.005)
        assert ws.pings >= 1

        await monitor.disconnect()


class TestReconnect:
    @pytest.mark.asyncio
    async def test_transport_close_schedules_reconnect(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)

        connector.sockets[0].incoming.put_nowait(None)
        await _until(lambda: monitor.reconnect_attempts == 1)

        assert monitor.state is ConnectionState.DISCONNECTED
        assert monitor._reconnect_task is not None

        await monitor.disconnect()
        assert monitor._reconnect_task is None
        assert len(connector.sockets) == 1

    @pytest.mark.asyncio
    async def test_rejected_subscription_schedules_reconnect(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)

        connector.sockets[0].incoming.put_nowait(
            json.dumps(
                {
                    "jsonrpc": "2.0",
                    "id": SUBSCRIBE_REQUEST_ID,
                    "error": {"code": -32602, "message": "Invalid params"},
                }
            )
        )
        await _until(lambda: monitor.reconnect_attempts == 1)

        assert connector.sockets[0].closed is True
        assert monitor.state is ConnectionState.DISCONNECTED
        assert monitor._reconnect_task is not None

        await monitor.disconnect()

    @pytest.mark.asyncio
    async def test_duplicate_ack_keeps_one_heartbeat(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)
        ws = connector.sockets[0]

        ws.incoming.put_nowait(_ack(1))
        await _until(lambda: monitor.state is ConnectionState.SUBSCRIBED)
        first = monitor._heartbeat_task
        ws.incoming.put_nowait(_ack(2))
        await _until(lambda: monitor.status()["subscription_id"] == 2)
        await _until(lambda: first.done())

        assert first.cancelled()
        assert monitor._heartbeat_task is not first

        await monitor.disconnect()

    @pytest.mark.asyncio
    async def test_reconnect_actually_reconnects(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector, reconnect_base_delay=0.0)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)

        connector.sockets[0].incoming.put_nowait(None)
        await _until(lambda: len(connector.sockets) == 2 and connector.sockets[1].sent)
        connector.sockets[1].incoming.put_nowait(_ack())
        await _until(lambda: monitor.state is ConnectionState.SUBSCRIBED)
        # Ack resets the counter
        assert monitor.reconnect_attempts == 0

        await monitor.disconnect()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        monitor = _monitor(FakeConnector(), max_reconnect_attempts=3)
        monitor._torn_down = False
        monitor._wallet = WALLET

        delays = []
        for _ in range(5):
            delays.append(monitor._schedule_reconnect())
            if monitor._reconnect_task is not None:
                monitor._reconnect_task.cancel()
                monitor._reconnect_task = None

        assert delays == [100.0, 200.0, 300.0, None, None]
        assert monitor.reconnect_attempts == 3

    @pytest.mark.asyncio
    async def test_disconnect_suppresses_reconnect(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector, reconnect_base_delay=0.0)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)
        connector.sockets[0].incoming.put_nowait(_ack())
        await _until(lambda: monitor.state is ConnectionState.SUBSCRIBED)

        await monitor.disconnect()
        for _ in range(20):
            await asyncio.sleep(0)

        assert monitor.state is ConnectionState.DISCONNECTED
        assert monitor.wallet is None
        assert monitor._heartbeat_task is None
        assert monitor._reconnect_task is None
        assert len(connector.sockets) == 1
        assert connector.sockets[0].closed is True


class TestUpdateWallet:
    @pytest.mark.asyncio
    async def test_switch_tears_down_then_reconnects(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)

        await monitor.update_wallet("OtherWallet")
        await _until(lambda: len(connector.sockets) == 2 and connector.sockets[1].sent)

        assert connector.sockets[0].closed is True
        assert connector.sockets[1].sent[0]["params"][0]["accountInclude"] == ["OtherWallet"]
        assert monitor.wallet == "OtherWallet"
        assert monitor.reconnect_attempts == 0

        await monitor.disconnect()

    @pytest.mark.asyncio
    async def test_clearing_wallet_disconnects(self) -> None:
        connector = FakeConnector()
        monitor = _monitor(connector)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)

        await monitor.update_wallet(None)

        assert monitor.state is ConnectionState.DISCONNECTED
        assert monitor.wallet is None
        assert len(connector.sockets) == 1

    @pytest.mark.asyncio
    async def test_rearms_after_exhaustion(self) -> None:
        """A wallet change re-arms a monitor that gave up."""
        connector = FakeConnector()
        monitor = _monitor(connector, max_reconnect_attempts=0)
        monitor.connect(WALLET)
        await _until(lambda: connector.sockets and connector.sockets[0].sent)
        connector.sockets[0].incoming.put_nowait(None)
        await _until(lambda: monitor.state is ConnectionState.DISCONNECTED)
        assert monitor._reconnect_task is None

        await monitor.update_wallet(WALLET)
        await _until(lambda: len(connector.sockets) == 2)
        assert monitor.state is ConnectionState.CONNECTING

        await monitor.disconnect()
