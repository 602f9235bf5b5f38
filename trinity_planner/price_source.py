"""
Native Token Price Source

Supplies the USD price of a chain's native token.

Features:
- Real-time prices via CCXT tickers (<TOKEN>/USDT)
- In-memory cache keyed by token with TTL (default 60s)
- Bounded fetch timeout
- Fallback chain: live -> last-known-good cache -> conservative default
- Never raises for configured tokens
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

import ccxt.async_support as ccxt
from loguru import logger

from .clock import Clock, SystemClock
from .config import TrinityConfig
from .errors import UpstreamPriceUnavailable


@dataclass
class CachedPrice:
    """Price cache entry"""
    price: Decimal
    fetched_at: float


class PriceSource:
    """USD price of a native token"""

    async def price(self, token: str) -> Decimal:
        raise NotImplementedError

    async def price_with_status(self, token: str) -> Tuple[Decimal, Optional[str]]:
        """Price plus the fallback reason, None when the price is live"""
        return await self.price(token), None

    async def close(self):
        pass


class StaticPriceSource(PriceSource):
    """Fixed prices, no network (offline mode and tests)"""

    def __init__(self, prices: Dict[str, Decimal]):
        self.prices = {token.upper(): Decimal(str(price)) for token, price in prices.items()}

    @classmethod
    def from_config(cls, config: TrinityConfig) -> 'StaticPriceSource':
        return cls(config.default_prices())

    async def price(self, token: str) -> Decimal:
        token = token.upper()
        if token not in self.prices:
            raise UpstreamPriceUnavailable(token, "no static price configured")
        return self.prices[token]


class CachingPriceSource(PriceSource):
    """
    Cache + timeout + fallback around a raw price fetch

    Subclasses implement _fetch(token). The cache is shared by all concurrent
    estimator calls; reads and writes go through an asyncio.Lock and staleness
    is accepted.
    """

    def __init__(
        self,
        default_prices: Dict[str, Decimal],
        cache_ttl_seconds: float = 60.0,
        timeout_seconds: float = 3.0,
        clock: Optional[Clock] = None
    ):
        """
        Args:
            default_prices: Conservative price per token, used when nothing else is available
            cache_ttl_seconds: Cache entry lifetime
            timeout_seconds: Upper bound for one fetch
            clock: Time source for TTL checks
        """
        self.default_prices = {token.upper(): Decimal(str(p)) for token, p in default_prices.items()}
        self.cache_ttl = float(cache_ttl_seconds)
        self.timeout = float(timeout_seconds)
        self.clock = clock or SystemClock()
        self.cache: Dict[str, CachedPrice] = {}
        self._lock = asyncio.Lock()
        self.stats = {'hits': 0, 'misses': 0, 'fetches': 0, 'failures': 0, 'defaults': 0}

    async def _fetch(self, token: str) -> Decimal:
        raise NotImplementedError

    async def _get_cached(self, token: str) -> Optional[CachedPrice]:
        async with self._lock:
            return self.cache.get(token)

    async def _set_cached(self, token: str, price: Decimal):
        async with self._lock:
            self.cache[token] = CachedPrice(price=price, fetched_at=self.clock.now())
        logger.debug(f"💾 Price cache SET: {token} = ${price}")

    async def price(self, token: str) -> Decimal:
        """USD price for a token, see price_with_status for the fallback order"""
        price, _ = await self.price_with_status(token)
        return price

    async def price_with_status(self, token: str) -> Tuple[Decimal, Optional[str]]:
        """
        Get USD price for a token and whether it is fallback data

        Priority:
        1. Fresh cache entry (age < TTL)
        2. Live fetch (bounded by timeout)
        3. Last-known-good cache entry, however old
        4. Conservative default

        Args:
            token: Token symbol (ETH, SOL, TON)

        Returns:
            (price in USD, fallback reason or None for 1 and 2)
        """
        token = token.upper()
        cached = await self._get_cached(token)

        if cached is not None:
            age = self.clock.now() - cached.fetched_at
            if age < self.cache_ttl:
                self.stats['hits'] += 1
                logger.debug(f"💾 Price cache HIT: {token} = ${cached.price}")
                return cached.price, None
            logger.debug(f"⏰ Price cache EXPIRED: {token} ({age:.0f}s old)")

        self.stats['misses'] += 1

        try:
            self.stats['fetches'] += 1
            raw = await asyncio.wait_for(self._fetch(token), timeout=self.timeout)
            if raw is None:
                raise UpstreamPriceUnavailable(token, "empty price")
            price = Decimal(str(raw))
            if price <= 0:
                raise UpstreamPriceUnavailable(token, f"non-positive price {price}")

            await self._set_cached(token, price)
            logger.debug(f"💰 {token}: ${price} (API)")
            return price, None

        except Exception as e:
            self.stats['failures'] += 1
            reason = 'timeout' if isinstance(e, asyncio.TimeoutError) else str(e)

            if cached is not None:
                logger.warning(f"Price fetch failed for {token} ({reason}), using last-known-good ${cached.price}")
                return cached.price, f"{token} price feed failed ({reason}), using last-known-good price"

            default = self.default_prices.get(token)
            if default is not None:
                self.stats['defaults'] += 1
                logger.warning(f"Price fetch failed for {token} ({reason}), using default ${default}")
                return default, f"{token} price feed failed ({reason}), using default price"

            raise UpstreamPriceUnavailable(token, reason) from e

    def clear_cache(self):
        """Clear all cached prices"""
        self.cache = {}
        logger.info("🧹 Price cache cleared")

    def cache_stats(self) -> Dict:
        """Cache counters plus per-token age"""
        now = self.clock.now()
        return {
            **self.stats,
            'entries': {
                token: {'price': str(entry.price), 'age_seconds': round(now - entry.fetched_at, 1)}
                for token, entry in self.cache.items()
            },
            'ttl_seconds': self.cache_ttl,
        }


class CcxtPriceSource(CachingPriceSource):
    """Prices from an exchange ticker via CCXT"""

    def __init__(
        self,
        default_prices: Dict[str, Decimal],
        exchange_id: str = 'binance',
        quote: str = 'USDT',
        cache_ttl_seconds: float = 60.0,
        timeout_seconds: float = 3.0,
        clock: Optional[Clock] = None,
        api_keys: Optional[Dict[str, str]] = None
    ):
        super().__init__(
            default_prices=default_prices,
            cache_ttl_seconds=cache_ttl_seconds,
            timeout_seconds=timeout_seconds,
            clock=clock
        )
        self.exchange_id = exchange_id
        self.quote = quote
        self.api_keys = api_keys or {}
        self.exchange: Optional[ccxt.Exchange] = None

        logger.info(f"💱 Price source initialized ({exchange_id}, TTL {cache_ttl_seconds}s, timeout {timeout_seconds}s)")

    @classmethod
    def from_config(cls, config: TrinityConfig, clock: Optional[Clock] = None) -> 'CcxtPriceSource':
        settings = config.price_source
        return cls(
            default_prices=config.default_prices(),
            exchange_id=settings.get('exchange', 'binance'),
            quote=settings.get('quote', 'USDT'),
            cache_ttl_seconds=config.price_cache_ttl_seconds,
            timeout_seconds=config.price_timeout_seconds,
            clock=clock,
            api_keys={'api_key': settings.get('api_key'), 'secret': settings.get('secret')}
        )

    def _create_exchange(self) -> ccxt.Exchange:
        """Create CCXT exchange instance"""
        exchange_class = getattr(ccxt, self.exchange_id)

        params = {
            'enableRateLimit': True,
            'timeout': int(self.timeout * 1000),
        }

        if self.api_keys.get('api_key'):
            params['apiKey'] = self.api_keys['api_key']
            params['secret'] = self.api_keys.get('secret')

        exchange = exchange_class(params)
        logger.debug(f"✅ Created {self.exchange_id} exchange instance")
        return exchange

    async def _fetch(self, token: str) -> Decimal:
        if self.exchange is None:
            self.exchange = self._create_exchange()

        symbol = f"{token}/{self.quote}"
        ticker = await self.exchange.fetch_ticker(symbol)
        last = ticker.get('last') or ticker.get('close')
        if last is None:
            raise UpstreamPriceUnavailable(token, f"no last price in {symbol} ticker")
        return Decimal(str(last))

    async def close(self):
        """Close exchange connection"""
        if self.exchange is not None:
            try:
                await self.exchange.close()
            except Exception as e:
                logger.debug(f"Error closing {self.exchange_id}: {e}")
            self.exchange = None
