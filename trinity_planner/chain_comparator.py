"""
Chain Comparator

Runs the fee estimator for every chain concurrently and reduces the results:
- recommended chain = cheapest USD fee
- ties resolve by the configured tie-break order (default: solana, ton, ethereum)
- savings = most expensive - cheapest, percent of the most expensive
"""

import asyncio
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from loguru import logger

from .config import TrinityConfig
from .fee_estimator import FeeEstimator
from .models import ChainComparison, EstimateResult, FeeEstimate, Savings

CENT = Decimal('0.01')
TENTH = Decimal('0.1')


class ChainComparator:
    """Concurrent 3-chain fee comparison"""

    def __init__(self, config: TrinityConfig, estimator: FeeEstimator):
        self.config = config
        self.estimator = estimator
        self._tie_rank = {chain: i for i, chain in enumerate(config.tie_break_order)}

    async def _estimate_bounded(
        self,
        chain: str,
        operation_kind: str,
        timeout: Optional[float]
    ) -> EstimateResult:
        """One chain's estimate; default data if it misses the deadline"""
        if timeout is None:
            return await self.estimator.estimate_with_status(chain, operation_kind)

        try:
            return await asyncio.wait_for(
                self.estimator.estimate_with_status(chain, operation_kind),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            reason = f"estimation exceeded {timeout}s"
            logger.warning(f"⏰ {chain}/{operation_kind}: {reason}, using static default")
            return EstimateResult(
                estimate=self.estimator.default_estimate(chain, operation_kind, reason=reason),
                is_fallback=True,
                reason=reason,
            )

    async def estimate_all(
        self,
        operation_kind: str,
        timeout: Optional[float] = None
    ) -> Dict[str, EstimateResult]:
        """
        Estimate every chain in parallel and wait for all of them

        Args:
            operation_kind: Operation tag
            timeout: Per-request deadline in seconds

        Returns:
            Dict chain -> EstimateResult, in universe order
        """
        tasks = [self._estimate_bounded(chain, operation_kind, timeout) for chain in self.config.universe]
        results = await asyncio.gather(*tasks)

        fallbacks = [r.estimate.chain for r in results if r.is_fallback]
        if fallbacks:
            logger.info(f"📋 {operation_kind}: fallback data used for {', '.join(fallbacks)}")

        return dict(zip(self.config.universe, results))

    async def compare_all(
        self,
        operation_kind: str,
        timeout: Optional[float] = None
    ) -> ChainComparison:
        """
        Compare all chains for one operation

        Args:
            operation_kind: Operation tag
            timeout: Per-request deadline in seconds

        Returns:
            ChainComparison
        """
        results = await self.estimate_all(operation_kind, timeout=timeout)
        estimates = {chain: result.estimate for chain, result in results.items()}
        comparison = self.reduce(operation_kind, estimates)

        logger.info(f"📊 {operation_kind}: cheapest {comparison.recommended_chain} "
                    f"(${comparison.cheapest.fee_usd}), saves ${comparison.savings.amount_usd_vs_most_expensive} "
                    f"({comparison.savings.percent}%)")
        return comparison

    def reduce(self, operation_kind: str, estimates: Dict[str, FeeEstimate]) -> ChainComparison:
        """Pick the cheapest chain and compute savings vs the most expensive one"""
        cheapest = min(estimates.values(), key=self._sort_key)
        most_expensive = max(estimates.values(), key=lambda e: e.fee_usd)

        amount = most_expensive.fee_usd - cheapest.fee_usd
        if most_expensive.fee_usd > 0:
            percent = (amount / most_expensive.fee_usd * 100).quantize(TENTH, rounding=ROUND_HALF_UP)
        else:
            percent = Decimal('0.0')

        return ChainComparison(
            operation_kind=operation_kind,
            estimates=estimates,
            recommended_chain=cheapest.chain,
            savings=Savings(
                amount_usd_vs_most_expensive=amount.quantize(CENT, rounding=ROUND_HALF_UP),
                percent=percent,
            ),
        )

    def ranked(self, comparison: ChainComparison) -> List[FeeEstimate]:
        """Estimates sorted cheapest first, ties in tie-break order"""
        return sorted(comparison.estimates.values(), key=self._sort_key)

    def _sort_key(self, estimate: FeeEstimate):
        return (estimate.fee_usd, self._tie_rank.get(estimate.chain, len(self._tie_rank)))
