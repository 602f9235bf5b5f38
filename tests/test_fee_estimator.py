"""Tests for per-chain fee estimation."""

from decimal import Decimal

import pytest

from trinity_planner.errors import InvalidChain
from trinity_planner.fee_estimator import FeeEstimator
from trinity_planner.gas_oracle import GasOracle, StaticGasOracle
from trinity_planner.models import CongestionLevel, EstimateSource


class BrokenGasOracle(GasOracle):
    async def gas_price_gwei(self):
        raise ConnectionError("rpc unreachable")


class TestFeeModels:
    """Reference fees for vault creation with default prices."""

    @pytest.mark.asyncio
    async def test_ethereum_fee_market(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)
        estimate = await estimator.estimate("ethereum", "vault_creation")

        assert estimate.fee_native == Decimal("0.01")
        assert estimate.fee_usd == Decimal("36.1")
        assert estimate.congestion == CongestionLevel.LOW
        assert estimate.estimated_confirm_seconds == 15
        assert estimate.metadata["gasLimit"] == 500000
        assert estimate.metadata["symbol"] == "ETH"

    @pytest.mark.asyncio
    async def test_solana_base_fee(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)
        estimate = await estimator.estimate("solana", "vault_creation")

        assert estimate.fee_native == Decimal("0.0003")
        assert estimate.fee_usd == Decimal("0.045")
        assert estimate.congestion == CongestionLevel.LOW
        assert estimate.estimated_confirm_seconds == 1

    @pytest.mark.asyncio
    async def test_ton_base_fee(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)
        estimate = await estimator.estimate("ton", "vault_creation")

        assert estimate.fee_native == Decimal("0.03")
        assert estimate.fee_usd == Decimal("0.165")

    @pytest.mark.asyncio
    async def test_operation_specific_tables(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)

        transfer = await estimator.estimate("ethereum", "transfer")
        withdrawal = await estimator.estimate("ton", "withdrawal")

        assert transfer.fee_native == Decimal("0.00042")
        assert withdrawal.fee_native == Decimal("0.015")

    @pytest.mark.asyncio
    async def test_unknown_operation_uses_default_entry(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)

        eth = await estimator.estimate("ethereum", "stake")
        sol = await estimator.estimate("solana", "stake")

        assert eth.fee_native == Decimal("0.002")
        assert sol.fee_native == Decimal("0.000025")

    @pytest.mark.asyncio
    async def test_fees_are_non_negative(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)
        for chain in config.universe:
            for op in ("vault_creation", "withdrawal", "swap", "transfer", "other"):
                estimate = await estimator.estimate(chain, op)
                assert estimate.fee_native >= 0
                assert estimate.fee_usd >= 0


class TestCongestion:
    """Gas price bands drive congestion and confirmation time."""

    @pytest.mark.parametrize("gwei,level,seconds", [
        ("10", CongestionLevel.LOW, 15),
        ("30", CongestionLevel.MEDIUM, 30),
        ("79.9", CongestionLevel.MEDIUM, 30),
        ("120", CongestionLevel.HIGH, 60),
    ])
    @pytest.mark.asyncio
    async def test_gas_price_bands(self, config, static_prices, gwei, level, seconds):
        estimator = FeeEstimator(config, static_prices, StaticGasOracle(gwei))
        estimate = await estimator.estimate("ethereum", "vault_creation")

        assert estimate.congestion == level
        assert estimate.estimated_confirm_seconds == seconds

    def test_congestion_ordering(self):
        assert CongestionLevel.LOW < CongestionLevel.MEDIUM < CongestionLevel.HIGH
        assert max([CongestionLevel.MEDIUM, CongestionLevel.HIGH, CongestionLevel.LOW]) == CongestionLevel.HIGH


class TestFallback:
    """Any failure degrades to the chain's static default."""

    @pytest.mark.asyncio
    async def test_price_failure_returns_default_estimate(self, config, failing_prices):
        estimator = FeeEstimator(config, failing_prices)
        result = await estimator.estimate_with_status("solana", "vault_creation")
        expected = estimator.default_estimate("solana", "vault_creation", reason=result.reason)

        assert result.is_fallback
        assert "feed down" in result.reason
        assert result.estimate == expected
        assert result.estimate.source == EstimateSource.FALLBACK
        assert result.estimate.fee_usd == Decimal("0.045")

    @pytest.mark.asyncio
    async def test_gas_oracle_failure_only_affects_ethereum(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices, BrokenGasOracle())

        eth = await estimator.estimate_with_status("ethereum", "vault_creation")
        ton = await estimator.estimate_with_status("ton", "vault_creation")

        assert eth.is_fallback
        assert "ConnectionError" in eth.reason
        assert eth.estimate.fee_usd == Decimal("36.1")
        assert not ton.is_fallback
        assert ton.estimate.source == EstimateSource.LIVE

    @pytest.mark.asyncio
    async def test_negative_gas_price_is_rejected(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices, StaticGasOracle("-1"))
        result = await estimator.estimate_with_status("ethereum", "vault_creation")

        assert result.is_fallback
        assert "invalid gas price" in result.reason

    @pytest.mark.asyncio
    async def test_unknown_chain_raises(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)
        with pytest.raises(InvalidChain):
            await estimator.estimate("dogecoin", "vault_creation")

    def test_default_estimate_to_dict(self, config, static_prices):
        estimator = FeeEstimator(config, static_prices)
        data = estimator.default_estimate("ton", "vault_creation").to_dict()

        assert data["source"] == "fallback"
        assert data["fallbackReason"] == "static default"
        assert data["estimatedFeeUsd"] == "0.165"

    @pytest.mark.asyncio
    async def test_dead_feed_default_price_is_tagged_fallback(self, config, scripted_prices):
        scripted_prices.fail = True
        estimator = FeeEstimator(config, scripted_prices)
        result = await estimator.estimate_with_status("ethereum", "vault_creation")

        assert result.is_fallback
        assert "using default price" in result.reason
        assert result.estimate.source == EstimateSource.FALLBACK
        assert result.estimate.fallback_reason == result.reason
        assert result.estimate.native_price_usd == Decimal("3000")
        assert result.estimate.fee_usd == Decimal("30")

    @pytest.mark.asyncio
    async def test_dead_feed_stale_cache_is_tagged_fallback(self, config, scripted_prices, frozen_clock):
        estimator = FeeEstimator(config, scripted_prices)
        live = await estimator.estimate_with_status("ton", "vault_creation")
        frozen_clock.advance(61)
        scripted_prices.fail = True
        stale = await estimator.estimate_with_status("ton", "vault_creation")

        assert not live.is_fallback
        assert live.estimate.source == EstimateSource.LIVE
        assert stale.is_fallback
        assert "last-known-good" in stale.reason
        assert stale.estimate.source == EstimateSource.FALLBACK
        assert stale.estimate.fee_usd == Decimal("0.165")
