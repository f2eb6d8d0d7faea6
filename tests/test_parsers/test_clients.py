"""Tests for the DexScreener, Cielo and Helius HTTP clients."""

import json

import httpx
import pytest

from paperhand.parsers.cielo.client import CieloClient, _parse_items
from paperhand.parsers.dexscreener.client import DexScreenerClient
from paperhand.parsers.helius.client import HeliusClient

MINT = "MintAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"


class TestDexScreenerClient:
    @pytest.mark.asyncio
    async def test_get_token_pairs(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "schemaVersion": "1.0.0",
                    "pairs": [
                        {
                            "chainId": "solana",
                            "dexId": "raydium",
                            "pairAddress": "PairA",
                            "baseToken": {"address": MINT, "name": "Paper Cat", "symbol": "PCAT"},
                            "priceUsd": "0.0042",
                            "liquidity": {"usd": 12345.6},
                            "marketCap": 420000,
                            "volume": {"h24": 1000},
                            "priceChange": {"h24": 3.2},
                        }
                    ],
                },
            )

        client = DexScreenerClient(max_rps=0, transport=httpx.MockTransport(handler))
        pairs = await client.get_token_pairs(MINT)
        await client.close()

        assert seen[0].url.path == f"/latest/dex/tokens/{MINT}"
        assert len(pairs) == 1
        assert pairs[0].chainId == "solana"
        assert pairs[0].liquidity_usd == pytest.approx(12345.6)

    @pytest.mark.asyncio
    async def test_null_pairs(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"pairs": None}))
        client = DexScreenerClient(max_rps=0, transport=transport)
        assert await client.get_token_pairs(MINT) == []
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_raises(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(500))
        client = DexScreenerClient(max_rps=0, transport=transport)
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_token_pairs(MINT)
        await client.close()


class TestCieloClient:
    @pytest.mark.asyncio
    async def test_get_swaps_params_and_parsing(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "status": "ok",
                    "data": {
                        "items": [
                            {
                                "tx_hash": "tx1",
                                "dex": "jupiter",
                                "timestamp": 1709000000,
                                "is_sell": True,
                                "token0_address": "So11111111111111111111111111111111111111112",
                                "token0_symbol": "WSOL",
                                "token0_amount": 0.5,
                                "token1_address": MINT,
                                "token1_symbol": "PCAT",
                                "token1_amount": 1000,
                                "token1_price_usd": None,
                            }
                        ]
                    },
                },
            )

        client = CieloClient("key123", max_rps=0, transport=httpx.MockTransport(handler))
        swaps = await client.get_swaps("WalletA", "solana", limit=50, token=MINT)
        await client.close()

        request = seen[0]
        assert request.headers["X-API-KEY"] == "key123"
        assert request.url.params["wallet"] == "WalletA"
        assert request.url.params["chains"] == "solana"
        assert request.url.params["txTypes"] == "swap"
        assert request.url.params["limit"] == "50"
        assert request.url.params["tokens"] == MINT
        assert swaps[0].is_sell is True
        assert swaps[0].token1_price_usd == 0.0

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(401, json={"error": "bad key"}))
        client = CieloClient("bad", max_rps=0, transport=transport)
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_swaps("WalletA", "solana")
        await client.close()

    def test_parse_items_skips_garbage(self) -> None:
        swaps = _parse_items({"data": {"items": [{"tx_hash": "ok"}, "junk", {"timestamp": "not-a-number"}]}})
        assert [s.tx_hash for s in swaps] == ["ok"]

    def test_parse_items_missing_data(self) -> None:
        assert _parse_items({}) == []
        assert _parse_items(None) == []


class TestHeliusClient:
    @pytest.mark.asyncio
    async def test_get_token_accounts(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "result": {
                        "total": 2,
                        "token_accounts": [
                            {"address": "acc1", "owner": "dev", "mint": MINT, "amount": 900},
                            {"address": "acc2", "owner": "b", "mint": MINT, "amount": 100},
                        ],
                    },
                },
            )

        client = HeliusClient("k", max_rps=0, transport=httpx.MockTransport(handler))
        accounts = await client.get_token_accounts(MINT, limit=20)
        await client.close()

        assert bodies[0]["method"] == "getTokenAccounts"
        assert bodies[0]["params"]["mint"] == MINT
        assert bodies[0]["params"]["options"]["showZeroBalance"] is False
        assert [(a.owner, a.amount) for a in accounts] == [("dev", 900.0), ("b", 100.0)]

    @pytest.mark.asyncio
    async def test_rpc_error_is_none(self) -> None:
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, json={"jsonrpc": "2.0", "error": {"code": -32602, "message": "bad"}})
        )
        client = HeliusClient("k", max_rps=0, transport=transport)
        assert await client.get_token_accounts(MINT) is None
        await client.close()

    @pytest.mark.asyncio
    async def test_http_error_is_none(self) -> None:
        client = HeliusClient("k", max_rps=0, transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        assert await client.get_token_accounts(MINT) is None
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_result(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"result": {"token_accounts": []}}))
        client = HeliusClient("k", max_rps=0, transport=transport)
        assert await client.get_token_accounts(MINT) == []
        await client.close()
