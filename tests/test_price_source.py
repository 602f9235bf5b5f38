"""Tests for native token price sources."""

import asyncio
from decimal import Decimal

import pytest

from trinity_planner.config import load_config
from trinity_planner.errors import UpstreamPriceUnavailable
from trinity_planner.price_source import CcxtPriceSource, StaticPriceSource

from conftest import ScriptedPriceSource


class TestStaticPriceSource:
    """Tests for StaticPriceSource."""

    @pytest.mark.asyncio
    async def test_known_token(self, static_prices):
        assert await static_prices.price("ETH") == Decimal("3610")
        assert await static_prices.price("sol") == Decimal("150")

    @pytest.mark.asyncio
    async def test_unknown_token_raises(self, static_prices):
        with pytest.raises(UpstreamPriceUnavailable):
            await static_prices.price("DOGE")


class TestCachingPriceSource:
    """Cache, timeout and fallback behavior."""

    @pytest.mark.asyncio
    async def test_fresh_cache_entry_is_reused(self, scripted_prices):
        first = await scripted_prices.price("ETH")
        scripted_prices.upstream["ETH"] = Decimal("9999")
        second = await scripted_prices.price("ETH")

        assert first == second == Decimal("3610")
        assert scripted_prices.fetch_count == 1
        assert scripted_prices.stats["hits"] == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, scripted_prices, frozen_clock):
        await scripted_prices.price("ETH")
        scripted_prices.upstream["ETH"] = Decimal("3700")
        frozen_clock.advance(61)

        assert await scripted_prices.price("ETH") == Decimal("3700")
        assert scripted_prices.fetch_count == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_uses_last_known_good(self, scripted_prices, frozen_clock):
        await scripted_prices.price("SOL")
        frozen_clock.advance(600)
        scripted_prices.fail = True

        assert await scripted_prices.price("SOL") == Decimal("150")
        assert scripted_prices.stats["failures"] == 1

    @pytest.mark.asyncio
    async def test_failure_without_cache_uses_default(self, scripted_prices):
        scripted_prices.fail = True

        assert await scripted_prices.price("TON") == Decimal("5")
        assert scripted_prices.stats["defaults"] == 1

    @pytest.mark.asyncio
    async def test_status_reports_where_the_price_came_from(self, scripted_prices, frozen_clock):
        live = await scripted_prices.price_with_status("SOL")
        cached = await scripted_prices.price_with_status("SOL")
        frozen_clock.advance(61)
        scripted_prices.fail = True
        stale = await scripted_prices.price_with_status("SOL")
        default = await scripted_prices.price_with_status("TON")

        assert live == (Decimal("150"), None)
        assert cached == (Decimal("150"), None)
        assert stale[0] == Decimal("150")
        assert "last-known-good" in stale[1]
        assert default[0] == Decimal("5")
        assert "using default price" in default[1]

    @pytest.mark.asyncio
    async def test_static_source_status_is_live(self, static_prices):
        assert await static_prices.price_with_status("ETH") == (Decimal("3610"), None)

    @pytest.mark.asyncio
    async def test_slow_feed_is_bounded_by_timeout(self, frozen_clock):
        source = ScriptedPriceSource(
            upstream={"ETH": Decimal("3610")},
            delay=1.0,
            default_prices={"ETH": Decimal("3000")},
            timeout_seconds=0.05,
            clock=frozen_clock,
        )

        assert await source.price("ETH") == Decimal("3000")

    @pytest.mark.asyncio
    async def test_no_default_raises(self, frozen_clock):
        source = ScriptedPriceSource(upstream={}, default_prices={}, clock=frozen_clock)
        source.fail = True

        with pytest.raises(UpstreamPriceUnavailable):
            await source.price("XYZ")

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_cache(self, scripted_prices):
        await scripted_prices.price("ETH")
        results = await asyncio.gather(*[scripted_prices.price("ETH") for _ in range(10)])

        assert set(results) == {Decimal("3610")}
        assert scripted_prices.fetch_count == 1

    @pytest.mark.asyncio
    async def test_cache_stats_and_clear(self, scripted_prices):
        await scripted_prices.price("ETH")
        stats = scripted_prices.cache_stats()

        assert stats["entries"]["ETH"]["price"] == "3610"
        assert stats["ttl_seconds"] == 60.0

        scripted_prices.clear_cache()
        assert scripted_prices.cache_stats()["entries"] == {}


class FakeExchange:
    def __init__(self, ticker):
        self.ticker = ticker
        self.symbols = []
        self.closed = False

    async def fetch_ticker(self, symbol):
        self.symbols.append(symbol)
        return self.ticker

    async def close(self):
        self.closed = True


class TestCcxtPriceSource:
    """CCXT ticker source with a fake exchange."""

    @pytest.mark.asyncio
    async def test_fetches_last_price(self, config, frozen_clock, monkeypatch):
        exchange = FakeExchange({"last": 3000.5, "close": 2999})
        source = CcxtPriceSource.from_config(config, clock=frozen_clock)
        monkeypatch.setattr(source, "_create_exchange", lambda: exchange)

        assert await source.price("eth") == Decimal("3000.5")
        assert exchange.symbols == ["ETH/USDT"]

        await source.close()
        assert exchange.closed
        assert source.exchange is None

    @pytest.mark.asyncio
    async def test_ticker_without_price_falls_back_to_default(self, config, frozen_clock, monkeypatch):
        source = CcxtPriceSource.from_config(config, clock=frozen_clock)
        monkeypatch.setattr(source, "_create_exchange", lambda: FakeExchange({"last": None, "close": None}))

        assert await source.price("SOL") == Decimal("150")

    @pytest.mark.asyncio
    async def test_api_keys_from_environment(self, tmp_path, monkeypatch, frozen_clock):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("TRINITY_CONFIG", raising=False)
        monkeypatch.delenv("TRINITY_PRICE_EXCHANGE", raising=False)
        monkeypatch.setenv("TRINITY_PRICE_API_KEY", "read-only-key")
        monkeypatch.setenv("TRINITY_PRICE_API_SECRET", "read-only-secret")
        source = CcxtPriceSource.from_config(load_config(), clock=frozen_clock)

        exchange = source._create_exchange()
        try:
            assert exchange.apiKey == "read-only-key"
            assert exchange.secret == "read-only-secret"
        finally:
            await exchange.close()

    @pytest.mark.asyncio
    async def test_no_api_keys_by_default(self, config, frozen_clock):
        source = CcxtPriceSource.from_config(config, clock=frozen_clock)

        exchange = source._create_exchange()
        try:
            assert not exchange.apiKey
        finally:
            await exchange.close()
