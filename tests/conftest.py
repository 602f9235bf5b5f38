"""Pytest configuration and fixtures."""

import asyncio
from decimal import Decimal
from typing import Dict

import pytest

from trinity_planner.clock import FrozenClock
from trinity_planner.config import default_config
from trinity_planner.errors import UpstreamPriceUnavailable
from trinity_planner.fee_history import FeeHistoryDB
from trinity_planner.planner import VaultDeploymentPlanner
from trinity_planner.price_source import CachingPriceSource, PriceSource, StaticPriceSource


class CountingPriceSource(PriceSource):
    """Static prices that count every lookup."""

    def __init__(self, prices: Dict[str, Decimal]):
        self.inner = StaticPriceSource(prices)
        self.calls = 0

    async def price(self, token: str) -> Decimal:
        self.calls += 1
        return await self.inner.price(token)


class ScriptedPriceSource(CachingPriceSource):
    """Caching source whose upstream is a dict the test can edit."""

    def __init__(self, upstream: Dict[str, Decimal], delay: float = 0.0, **kwargs):
        super().__init__(**kwargs)
        self.upstream = upstream
        self.delay = delay
        self.fetch_count = 0
        self.fail = False

    async def _fetch(self, token: str) -> Decimal:
        self.fetch_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise UpstreamPriceUnavailable(token, "connection refused")
        return self.upstream[token]


class FailingPriceSource(PriceSource):
    """Every lookup fails, nothing to fall back on."""

    async def price(self, token: str) -> Decimal:
        raise UpstreamPriceUnavailable(token, "feed down")


@pytest.fixture
def config():
    """Built-in configuration (no file, no environment)."""
    return default_config()


@pytest.fixture
def frozen_clock() -> FrozenClock:
    return FrozenClock(start=1000.0)


@pytest.fixture
def static_prices(config) -> StaticPriceSource:
    """ETH 3610, SOL 150, TON 5.50."""
    return StaticPriceSource.from_config(config)


@pytest.fixture
def counting_prices(config) -> CountingPriceSource:
    return CountingPriceSource(config.default_prices())


@pytest.fixture
def failing_prices() -> FailingPriceSource:
    return FailingPriceSource()


@pytest.fixture
def scripted_prices(config, frozen_clock) -> ScriptedPriceSource:
    return ScriptedPriceSource(
        upstream=dict(config.default_prices()),
        default_prices={'ETH': Decimal('3000'), 'SOL': Decimal('100'), 'TON': Decimal('5')},
        cache_ttl_seconds=60,
        timeout_seconds=0.5,
        clock=frozen_clock,
    )


@pytest.fixture
def planner(config, static_prices) -> VaultDeploymentPlanner:
    return VaultDeploymentPlanner(config, static_prices)


@pytest.fixture
def history():
    db = FeeHistoryDB(":memory:")
    yield db
    db.close()
