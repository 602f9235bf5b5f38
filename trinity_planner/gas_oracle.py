"""
Gas Price Oracle

Current gas price for the fee-market chain, read with eth_gasPrice over JSON-RPC.
Errors propagate to the fee estimator, which turns them into its static default.
"""

import asyncio
from decimal import Decimal
from typing import Optional

import aiohttp
from loguru import logger

from .config import TrinityConfig

WEI_PER_GWEI = Decimal(10) ** 9

RETRYABLE_KEYWORDS = [
    'timeout', 'network', 'connection', 'rate limit',
    'temporarily', 'unavailable', '429', '502', '503', '504'
]


class GasOracle:
    """Gas price in gwei"""

    async def gas_price_gwei(self) -> Decimal:
        raise NotImplementedError

    async def close(self):
        pass


class StaticGasOracle(GasOracle):
    def __init__(self, gas_price_gwei):
        self.value = Decimal(str(gas_price_gwei))

    async def gas_price_gwei(self) -> Decimal:
        return self.value


class RpcGasOracle(GasOracle):
    """eth_gasPrice via aiohttp with retry on transient failures"""

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 3.0,
        max_retries: int = 1,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.rpc_url = rpc_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_retries = max_retries
        self._session = session
        self._owns_session = session is None

        logger.info(f"⛽ Gas oracle initialized ({rpc_url})")

    @classmethod
    def from_config(cls, config: TrinityConfig) -> Optional['RpcGasOracle']:
        """None when no RPC URL is configured"""
        settings = config.gas_oracle
        if not settings.get('rpc_url'):
            return None
        return cls(
            rpc_url=settings['rpc_url'],
            timeout_seconds=float(settings.get('timeout_seconds', 3.0)),
            max_retries=int(settings.get('max_retries', 1)),
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def _call(self) -> Decimal:
        session = await self._get_session()
        payload = {'jsonrpc': '2.0', 'id': 1, 'method': 'eth_gasPrice', 'params': []}

        async with session.post(self.rpc_url, json=payload) as response:
            response.raise_for_status()
            body = await response.json()

        if 'error' in body:
            raise ValueError(f"RPC error: {body['error']}")

        wei = int(body['result'], 16)
        return Decimal(wei) / WEI_PER_GWEI

    async def gas_price_gwei(self) -> Decimal:
        """
        Fetch gas price with retry logic for transient RPC failures

        Returns:
            Gas price in gwei

        Raises:
            Exception from the last attempt
        """
        for attempt in range(self.max_retries + 1):
            try:
                gas_price = await self._call()
                logger.debug(f"⛽ Gas price: {gas_price} gwei")
                return gas_price

            except Exception as e:
                error_str = str(e).lower()
                is_retryable = isinstance(e, asyncio.TimeoutError) or any(
                    keyword in error_str for keyword in RETRYABLE_KEYWORDS
                )

                if not is_retryable or attempt >= self.max_retries:
                    logger.warning(f"Gas price fetch failed (attempt {attempt + 1}): {str(e)[:100]}")
                    raise

                wait_time = 0.25 * (2 ** attempt)
                logger.debug(f"Retryable gas price error, waiting {wait_time}s before retry...")
                await asyncio.sleep(wait_time)

        raise RuntimeError("unreachable")

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
