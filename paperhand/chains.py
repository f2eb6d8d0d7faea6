"""Supported chains and what each one can do."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Chain(str, Enum):
    SOLANA = "solana"
    ETHEREUM = "eth"
    BASE = "base"
    BSC = "bsc"

    @classmethod
    def parse(cls, value: str | Chain) -> Chain:
        """Accept canonical values plus the aliases the extension sends."""
        if isinstance(value, Chain):
            return value
        key = (value or "").strip().lower()
        chain = _ALIASES.get(key)
        if chain is None:
            raise ValueError(f"Unsupported chain: {value!r}")
        return chain

    @classmethod
    def try_parse(cls, value: str | Chain | None) -> Chain | None:
        try:
            return cls.parse(value)
        except ValueError:
            return None

    @property
    def info(self) -> ChainInfo:
        return CHAIN_INFO[self]


@dataclass(frozen=True)
class ChainInfo:
    native_symbol: str
    dexscreener_id: str
    cielo_id: str
    wallet_kind: str  # key in the user's "wallets" setting
    holder_introspection: bool = False


CHAIN_INFO: dict[Chain, ChainInfo] = {
    Chain.SOLANA: ChainInfo(
        native_symbol="SOL",
        dexscreener_id="solana",
        cielo_id="solana",
        wallet_kind="solana",
        holder_introspection=True,
    ),
    Chain.ETHEREUM: ChainInfo(
        native_symbol="ETH",
        dexscreener_id="ethereum",
        cielo_id="ethereum",
        wallet_kind="evm",
    ),
    Chain.BASE: ChainInfo(
        native_symbol="ETH",
        dexscreener_id="base",
        cielo_id="base",
        wallet_kind="evm",
    ),
    Chain.BSC: ChainInfo(
        native_symbol="BNB",
        dexscreener_id="bsc",
        cielo_id="bsc",
        wallet_kind="evm",
    ),
}

_ALIASES: dict[str, Chain] = {
    "solana": Chain.SOLANA,
    "sol": Chain.SOLANA,
    "eth": Chain.ETHEREUM,
    "ethereum": Chain.ETHEREUM,
    "base": Chain.BASE,
    "bsc": Chain.BSC,
    "bnb": Chain.BSC,
}

_WRAPPED_NATIVE = {"WSOL": "SOL", "WETH": "ETH", "WBNB": "BNB"}


def normalize_native_symbol(symbol: str | None) -> str | None:
    """Collapse wrapped native symbols to their base asset (WSOL -> SOL)."""
    if not symbol:
        return symbol
    upper = symbol.upper()
    return _WRAPPED_NATIVE.get(upper, upper)


def wallet_for_chain(wallets: dict[str, str] | None, chain: Chain) -> str | None:
    """Pick the configured wallet address that trades on ``chain``."""
    if not wallets:
        return None
    return wallets.get(chain.info.wallet_kind) or None
