"""Holder concentration tracking: dev dump detection by snapshot diffing."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
from loguru import logger

from paperhand.cache import TTLCache
from paperhand.chains import Chain
from paperhand.parsers.helius.client import HeliusClient
from paperhand.parsers.helius.models import HeliusTokenAccount

HOLDER_CACHE_TTL = 300.0
DEFAULT_TOP_N = 20

# Same top holder drop: the #1 holder shed this many points
TOP_HOLDER_DROP_PCT = 10.0
# Large holder exit: a prior top-5 holder this large is gone or under EXIT_RESIDUAL_PCT
LARGE_HOLDER_PCT = 15.0
EXIT_RESIDUAL_PCT = 1.0
LARGE_HOLDER_WINDOW = 5


@dataclass(frozen=True)
class HolderShare:
    address: str
    percentage: float
    amount: float = 0.0


@dataclass
class HolderState:
    """Top holders of one mint at one point in time, largest first."""

    holders: list[HolderShare]
    timestamp: float = field(default_factory=time.time)

    def find(self, address: str) -> HolderShare | None:
        for holder in self.holders:
            if holder.address == address:
                return holder
        return None


@dataclass
class DumpDetails:
    address: str
    previous_percentage: float
    current_percentage: float
    sold_percentage: float


@dataclass
class DumpResult:
    detected: bool = False
    percent: float = 0.0
    details: DumpDetails | None = None
    current_state: HolderState | None = None


@dataclass
class RiskReport:
    risk: str  # critical | high | medium | low | unknown
    reason: str
    top1_pct: float = 0.0
    top5_pct: float = 0.0
    top10_pct: float = 0.0
    holders_count: int = 0
    top_holders: list[HolderShare] = field(default_factory=list)


def holder_shares(accounts: list[HeliusTokenAccount]) -> list[HolderShare]:
    """Share of the observed (top-N) balance sum, not of total supply."""
    total = sum(a.amount for a in accounts)
    shares = [
        HolderShare(
            address=a.owner,
            amount=a.amount,
            percentage=(a.amount / total) * 100 if total > 0 else 0.0,
        )
        for a in accounts
    ]
    shares.sort(key=lambda h: h.percentage, reverse=True)
    return shares


def diff_holder_states(previous: HolderState, current: HolderState) -> DumpResult:
    """Compare two generations of top holders for a large sell-off."""
    result = DumpResult(current_state=current)
    if not current.holders or not previous.holders:
        return result

    top = current.holders[0]
    prev_top = previous.holders[0]
    if top.address == prev_top.address:
        drop = prev_top.percentage - top.percentage
        if drop >= TOP_HOLDER_DROP_PCT:
            result.detected = True
            result.percent = drop
            result.details = DumpDetails(
                address=top.address,
                previous_percentage=prev_top.percentage,
                current_percentage=top.percentage,
                sold_percentage=drop,
            )
            logger.info(f"[DEVTRACK] Top holder {top.address[:8]} sold {drop:.1f}%")

    for prev in previous.holders[:LARGE_HOLDER_WINDOW]:
        if prev.percentage < LARGE_HOLDER_PCT:
            continue
        now = current.find(prev.address)
        now_pct = now.percentage if now else 0.0
        if now is not None and now_pct >= EXIT_RESIDUAL_PCT:
            continue
        result.detected = True
        logger.info(f"[DEVTRACK] Large holder {prev.address[:8]} exited ({prev.percentage:.1f}%)")
        if prev.percentage >= result.percent:
            result.percent = prev.percentage
            result.details = DumpDetails(
                address=prev.address,
                previous_percentage=prev.percentage,
                current_percentage=now_pct,
                sold_percentage=prev.percentage - now_pct,
            )

    return result


def classify_concentration(holders: list[HolderShare]) -> RiskReport:
    top1 = holders[0].percentage if holders else 0.0
    top5 = sum(h.percentage for h in holders[:5])
    top10 = sum(h.percentage for h in holders[:10])

    if top1 >= 30:
        risk, reason = "critical", f"Top holder has {top1:.1f}% of supply"
    elif top1 >= 20:
        risk, reason = "high", f"Top holder has {top1:.1f}% of supply"
    elif top5 >= 50:
        risk, reason = "high", f"Top 5 holders have {top5:.1f}% of supply"
    elif top10 >= 60:
        risk, reason = "medium", f"Top 10 holders have {top10:.1f}% of supply"
    else:
        risk, reason = "low", "Healthy distribution"

    return RiskReport(
        risk=risk,
        reason=reason,
        top1_pct=top1,
        top5_pct=top5,
        top10_pct=top10,
        holders_count=len(holders),
        top_holders=holders[:5],
    )


class HolderStateStore:
    """Last HolderState per mint. One generation only: put() overwrites."""

    def __init__(self) -> None:
        self._states: dict[str, HolderState] = {}

    def get(self, mint: str) -> HolderState | None:
        return self._states.get(mint)

    def put(self, mint: str, state: HolderState) -> None:
        self._states[mint] = state

    def __len__(self) -> int:
        return len(self._states)


class HolderTracker:
    def __init__(
        self,
        client: HeliusClient,
        *,
        top_n: int = DEFAULT_TOP_N,
        cache: TTLCache[str, list[HolderShare]] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._top_n = top_n
        self._cache: TTLCache[str, list[HolderShare]] = cache or TTLCache(HOLDER_CACHE_TTL)
        self._clock = clock

    async def get_holders(self, mint: str) -> list[HolderShare] | None:
        """Current top holders with shares; None when introspection failed."""
        cached = self._cache.get(mint)
        if cached is not None:
            return cached
        try:
            accounts = await self._client.get_token_accounts(mint, limit=self._top_n)
        except httpx.HTTPError as e:
            logger.warning(f"[DEVTRACK] Holder fetch failed for {mint[:8]}: {e}")
            return None
        if accounts is None:
            return None
        shares = holder_shares(accounts)
        self._cache.set(mint, shares)
        return shares

    async def detect_dump(
        self,
        mint: str,
        chain: Chain | str,
        previous_state: HolderState | None,
    ) -> DumpResult:
        chain = Chain.try_parse(chain)
        if chain is None or not chain.info.holder_introspection:
            return DumpResult()

        holders = await self.get_holders(mint)
        if not holders:
            return DumpResult()

        current = HolderState(holders=holders, timestamp=self._clock())
        if previous_state is None or not previous_state.holders:
            return DumpResult(current_state=current)
        return diff_holder_states(previous_state, current)

    async def risk_level(self, mint: str, chain: Chain | str) -> RiskReport:
        chain = Chain.try_parse(chain)
        if chain is None or not chain.info.holder_introspection:
            return RiskReport(risk="unknown", reason="Chain not supported for holder analysis")

        holders = await self.get_holders(mint)
        if not holders:
            return RiskReport(risk="unknown", reason="Could not fetch holders")
        return classify_concentration(holders)
