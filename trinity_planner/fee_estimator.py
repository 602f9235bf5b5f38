"""
Fee Estimator

Estimates the cost of one operation on one chain.

Cost models:
- fee_market (ethereum): fee = gas_price x gas_limit[operation], congestion from gas price bands
- base_fee (solana, ton): fee = base_fee x multiplier[operation], congestion fixed low

USD fee = native fee x token price. Any failure while estimating is converted
into the chain's static default estimate, tagged as fallback.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from loguru import logger

from .config import FEE_MARKET_MODEL, ChainSettings, TrinityConfig
from .errors import EstimationFailure
from .gas_oracle import WEI_PER_GWEI, GasOracle
from .models import CongestionLevel, EstimateResult, EstimateSource, FeeEstimate
from .price_source import PriceSource

NATIVE_QUANTUM = Decimal('0.000000000001')
USD_QUANTUM = Decimal('0.000001')


class FeeEstimator:
    """
    Per-chain fee estimation with static fallback

    Features:
    - Structurally different cost model per chain
    - Operation-specific gas limits / multipliers from config
    - Confirmation time by (chain, congestion)
    - Never raises for a chain inside the universe
    """

    def __init__(
        self,
        config: TrinityConfig,
        price_source: PriceSource,
        gas_oracle: Optional[GasOracle] = None
    ):
        """
        Args:
            config: Planner configuration
            price_source: Native token USD prices
            gas_oracle: Live gas price for fee-market chains (config default when None)
        """
        self.config = config
        self.price_source = price_source
        self.gas_oracle = gas_oracle

        logger.info(f"🧮 Fee estimator initialized for {', '.join(config.universe)}"
                    + (" (live gas)" if gas_oracle else " (static gas)"))

    async def estimate(self, chain: str, operation_kind: str) -> FeeEstimate:
        """Fee estimate for one chain/operation, fallback data on any failure"""
        result = await self.estimate_with_status(chain, operation_kind)
        return result.estimate

    async def estimate_with_status(self, chain: str, operation_kind: str) -> EstimateResult:
        """
        Estimate and report whether the value is real or fallback data

        Args:
            chain: Chain id (must belong to the universe)
            operation_kind: Operation tag; unknown tags use the default table entry

        Returns:
            EstimateResult
        """
        settings = self.config.chain(chain)

        try:
            if settings.model == FEE_MARKET_MODEL:
                estimate = await self._estimate_fee_market(settings, operation_kind)
            else:
                estimate = await self._estimate_base_fee(settings, operation_kind)

            logger.debug(f"💰 {settings.chain_id}/{operation_kind}: ${estimate.fee_usd} "
                         f"({estimate.congestion.value})")
            if estimate.is_fallback:
                logger.warning(f"⚠️  {settings.chain_id}/{operation_kind} priced from fallback data: "
                               f"{estimate.fallback_reason}")
            return EstimateResult(
                estimate=estimate,
                is_fallback=estimate.is_fallback,
                reason=estimate.fallback_reason
            )

        except Exception as e:
            failure = e if isinstance(e, EstimationFailure) else EstimationFailure(
                settings.chain_id, operation_kind, f"{type(e).__name__}: {e}"
            )
            logger.warning(f"⚠️  {failure}, using static default")
            fallback = self.default_estimate(settings.chain_id, operation_kind, reason=failure.reason)
            return EstimateResult(estimate=fallback, is_fallback=True, reason=failure.reason)

    async def _estimate_fee_market(self, settings: ChainSettings, operation_kind: str) -> FeeEstimate:
        if self.gas_oracle is not None:
            gas_price = await self.gas_oracle.gas_price_gwei()
        else:
            gas_price = settings.default_gas_price_gwei

        if gas_price is None or gas_price < 0:
            raise EstimationFailure(settings.chain_id, operation_kind, f"invalid gas price {gas_price}")

        gas_limit = settings.gas_limit_for(operation_kind)
        fee_native = gas_price * gas_limit / WEI_PER_GWEI
        congestion = settings.congestion_for_gas_price(gas_price)
        price, price_reason = await self.price_source.price_with_status(settings.token)

        return self._build(
            settings, operation_kind, fee_native, price, congestion,
            metadata={
                'model': settings.model,
                'gasPriceGwei': str(gas_price),
                'gasLimit': gas_limit,
            },
            **self._price_source_tag(price_reason)
        )

    async def _estimate_base_fee(self, settings: ChainSettings, operation_kind: str) -> FeeEstimate:
        multiplier = settings.multiplier_for(operation_kind)
        fee_native = settings.base_fee * multiplier
        price, price_reason = await self.price_source.price_with_status(settings.token)

        return self._build(
            settings, operation_kind, fee_native, price, CongestionLevel.LOW,
            metadata={
                'model': settings.model,
                'baseFee': str(settings.base_fee),
                'multiplier': str(multiplier),
            },
            **self._price_source_tag(price_reason)
        )

    def _price_source_tag(self, price_reason: Optional[str]) -> Dict:
        """Estimates priced from a stale or default token price are fallback data"""
        if price_reason is None:
            return {}
        return {'source': EstimateSource.FALLBACK, 'reason': price_reason}

    def _build(
        self,
        settings: ChainSettings,
        operation_kind: str,
        fee_native: Decimal,
        price: Decimal,
        congestion: CongestionLevel,
        metadata: Dict,
        source: EstimateSource = EstimateSource.LIVE,
        reason: Optional[str] = None
    ) -> FeeEstimate:
        fee_native = fee_native.quantize(NATIVE_QUANTUM, rounding=ROUND_HALF_UP)
        fee_usd = (fee_native * price).quantize(USD_QUANTUM, rounding=ROUND_HALF_UP)

        return FeeEstimate(
            chain=settings.chain_id,
            operation_kind=operation_kind,
            fee_native=fee_native,
            fee_usd=fee_usd,
            native_price_usd=price,
            congestion=congestion,
            estimated_confirm_seconds=settings.confirm_seconds_for(congestion),
            source=source,
            fallback_reason=reason,
            metadata={**metadata, 'symbol': settings.symbol},
        )

    def default_estimate(self, chain: str, operation_kind: str, reason: Optional[str] = None) -> FeeEstimate:
        """
        Static default estimate for a chain/operation

        Uses the configured default gas price and default token price, so the
        value stays realistic enough for comparisons.
        """
        settings = self.config.chain(chain)

        if settings.model == FEE_MARKET_MODEL:
            gas_price = settings.default_gas_price_gwei
            gas_limit = settings.gas_limit_for(operation_kind)
            fee_native = gas_price * gas_limit / WEI_PER_GWEI
            congestion = settings.congestion_for_gas_price(gas_price)
            metadata = {'model': settings.model, 'gasPriceGwei': str(gas_price), 'gasLimit': gas_limit}
        else:
            multiplier = settings.multiplier_for(operation_kind)
            fee_native = settings.base_fee * multiplier
            congestion = CongestionLevel.LOW
            metadata = {'model': settings.model, 'baseFee': str(settings.base_fee), 'multiplier': str(multiplier)}

        return self._build(
            settings, operation_kind, fee_native, settings.default_price_usd, congestion,
            metadata=metadata,
            source=EstimateSource.FALLBACK,
            reason=reason or 'static default',
        )
