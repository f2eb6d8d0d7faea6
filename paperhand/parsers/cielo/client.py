"""Cielo Finance feed client, swap history for a wallet."""

import asyncio
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from paperhand.parsers.cielo.models import CieloSwap
from paperhand.parsers.rate_limiter import RateLimiter

BASE_URL = "https://feed-api.cielo.finance/api/v1"
MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]


class CieloClient:
    """Async HTTP client for the Cielo wallet activity feed."""

    def __init__(
        self,
        api_key: str,
        max_rps: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._rate_limiter = RateLimiter(max_rps)
        self._client = httpx.AsyncClient(
            base_url=BASE_URL,
            timeout=15.0,
            headers={"X-API-KEY": api_key, "Accept": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def get_swaps(
        self,
        wallet: str,
        chain_id: str,
        *,
        limit: int = 100,
        token: str | None = None,
    ) -> list[CieloSwap]:
        """Recent swaps for ``wallet`` on ``chain_id``, newest first.

        Raises httpx.HTTPError when the feed keeps failing; callers decide
        how to degrade.
        """
        params: dict[str, Any] = {
            "wallet": wallet,
            "chains": chain_id,
            "txTypes": "swap",
            "limit": str(limit),
        }
        if token:
            params["tokens"] = token

        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.get("/feed", params=params)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                    continue
                logger.warning(f"[CIELO] get_swaps failed: {e}")
                raise

            if resp.status_code == 429 and attempt < MAX_RETRIES:
                await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                continue
            resp.raise_for_status()
            return _parse_items(resp.json())

        return []


def _parse_items(data: Any) -> list[CieloSwap]:
    """Extract ``data.items``, skipping records that fail validation."""
    items = (data or {}).get("data", {}) if isinstance(data, dict) else {}
    items = items.get("items", []) if isinstance(items, dict) else []
    swaps: list[CieloSwap] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            swaps.append(CieloSwap.model_validate(item))
        except ValidationError as e:
            logger.debug(f"[CIELO] Skipping malformed swap {item.get('tx_hash')}: {e}")
    return swaps
