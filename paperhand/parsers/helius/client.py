"""Helius RPC client used for holder introspection on Solana mints."""

import asyncio

import httpx
from loguru import logger
from pydantic import ValidationError

from paperhand.parsers.helius.models import HeliusTokenAccount
from paperhand.parsers.rate_limiter import RateLimiter

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]


class HeliusClient:
    """Async HTTP client for the Helius RPC endpoint (DAS methods)."""

    def __init__(
        self,
        api_key: str,
        rpc_url: str = "",
        max_rps: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._rpc_url = rpc_url or f"https://mainnet.helius-rpc.com/?api-key={api_key}"
        self._rate_limiter = RateLimiter(max_rps)
        self._client = httpx.AsyncClient(timeout=15.0, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_token_accounts(
        self, mint: str, *, limit: int = 20
    ) -> list[HeliusTokenAccount] | None:
        """Fetch the largest non-zero token accounts for ``mint``.

        Returns None on HTTP/RPC failure so callers can tell "unknown"
        apart from "no holders".
        """
        payload = {
            "jsonrpc": "2.0",
            "id": "paperhand",
            "method": "getTokenAccounts",
            "params": {
                "mint": mint,
                "limit": limit,
                "options": {"showZeroBalance": False},
            },
        }

        for attempt in range(MAX_RETRIES + 1):
            try:
                await self._rate_limiter.acquire()
                resp = await self._client.post(self._rpc_url, json=payload)

                if resp.status_code == 429:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                    continue
                if resp.status_code != 200:
                    logger.debug(f"[HELIUS] getTokenAccounts HTTP {resp.status_code}")
                    return None

                data = resp.json()
                if "error" in data:
                    logger.debug(f"[HELIUS] getTokenAccounts RPC error: {data['error']}")
                    return None

                accounts = (data.get("result") or {}).get("token_accounts") or []
                return [HeliusTokenAccount.model_validate(a) for a in accounts]

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                else:
                    logger.warning(f"[HELIUS] getTokenAccounts failed: {e}")
                    return None
            except (ValueError, ValidationError) as e:
                logger.warning(f"[HELIUS] getTokenAccounts bad payload: {e}")
                return None

        return None
