"""Tests for the TTL cache and chain helpers."""

import pytest

from paperhand.cache import TTLCache
from paperhand.chains import Chain, normalize_native_symbol, wallet_for_chain


class TestTTLCache:
    def test_expiry(self, clock) -> None:
        cache: TTLCache[str, int] = TTLCache(ttl=10, clock=clock)
        cache.set("a", 1)

        clock.advance(9.9)
        assert cache.get("a") == 1
        clock.advance(0.1)
        assert cache.get("a") is None
        # Expired entries stay until evicted
        assert "a" in cache

    def test_evict_older_than(self, clock) -> None:
        cache: TTLCache[str, int] = TTLCache(ttl=10, clock=clock)
        cache.set("old", 1)
        clock.advance(15)
        cache.set("new", 2)
        clock.advance(6)

        assert cache.evict_older_than(20) == 1
        assert "old" not in cache
        assert cache.get("new") == 2
        assert cache.age("new") == 6

    def test_pop_and_clear(self, clock) -> None:
        cache: TTLCache[str, int] = TTLCache(ttl=10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.pop("a") == 1
        assert cache.pop("a") is None
        cache.clear()
        assert len(cache) == 0


class TestChains:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("sol", Chain.SOLANA),
            ("Solana", Chain.SOLANA),
            ("ethereum", Chain.ETHEREUM),
            ("eth", Chain.ETHEREUM),
            (" base ", Chain.BASE),
            ("bnb", Chain.BSC),
            (Chain.BSC, Chain.BSC),
        ],
    )
    def test_parse_aliases(self, raw, expected) -> None:
        assert Chain.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["", "dogechain", None])
    def test_parse_rejects(self, raw) -> None:
        with pytest.raises(ValueError):
            Chain.parse(raw)

    def test_try_parse(self) -> None:
        assert Chain.try_parse("sol") is Chain.SOLANA
        assert Chain.try_parse("dogechain") is None
        assert Chain.try_parse(None) is None

    def test_native_symbols(self) -> None:
        assert normalize_native_symbol("wsol") == "SOL"
        assert normalize_native_symbol("WETH") == "ETH"
        assert normalize_native_symbol("pcat") == "PCAT"
        assert normalize_native_symbol(None) is None
        assert Chain.BSC.info.native_symbol == "BNB"

    def test_wallet_for_chain(self) -> None:
        wallets = {"solana": "SolWallet", "evm": "0xabc"}
        assert wallet_for_chain(wallets, Chain.SOLANA) == "SolWallet"
        assert wallet_for_chain(wallets, Chain.BASE) == "0xabc"
        assert wallet_for_chain({"solana": ""}, Chain.SOLANA) is None
        assert wallet_for_chain(None, Chain.ETHEREUM) is None
