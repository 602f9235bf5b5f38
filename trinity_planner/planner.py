"""
Vault Deployment Planner

Top-level orchestrator:
- plan(): fee comparison + role assignment + verification policy -> VaultCreationPlan
- validate_selection(): advisory warnings for a chosen primary chain
- recommend(): preference-based chain recommendation
- recommend_for_operation(): cheapest chain for an operation with savings
"""

import asyncio
from decimal import Decimal
from typing import List, Optional

from loguru import logger

from .chain_comparator import ChainComparator
from .clock import Clock
from .config import TrinityConfig, load_config
from .fee_estimator import FeeEstimator
from .gas_oracle import GasOracle, RpcGasOracle
from .models import (
    ChainComparison,
    ChainInfo,
    ChainRecommendation,
    CongestionLevel,
    OperationKind,
    SecurityConfig,
    SelectionValidation,
    VaultCreationPlan,
    decimal_str,
)
from .price_source import CcxtPriceSource, PriceSource, StaticPriceSource
from .role_assigner import TrinityRoleAssigner


class VaultDeploymentPlanner:
    """
    Trinity vault deployment planner

    Features:
    - Concurrent 3-chain fee comparison
    - Deterministic primary/verifier role assignment
    - Security-level driven verification requirements
    - Advisory selection validation
    - Preference-based recommendations
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
            gas_oracle: Live gas price for the fee-market chain (config default when None)
        """
        self.config = config
        self.price_source = price_source
        self.gas_oracle = gas_oracle
        self.estimator = FeeEstimator(config, price_source, gas_oracle)
        self.comparator = ChainComparator(config, self.estimator)
        self.role_assigner = TrinityRoleAssigner(config)

        planner_settings = config.planner
        self.fee_warning_threshold = Decimal(str(planner_settings.get('fee_warning_threshold_usd', '10')))
        self.balance_safety_multiple = Decimal(str(planner_settings.get('balance_safety_multiple', '2')))
        self.speed_chain = planner_settings.get('speed_chain', 'solana')
        self.security_chain = planner_settings.get('security_chain', 'ethereum')
        self.balanced_chain = planner_settings.get('balanced_chain', 'ton')

        logger.info(f"🔱 Vault deployment planner initialized ({', '.join(config.universe)})")

    @classmethod
    def from_config(
        cls,
        config: Optional[TrinityConfig] = None,
        offline: bool = False,
        clock: Optional[Clock] = None
    ) -> 'VaultDeploymentPlanner':
        """
        Build a planner with live collaborators

        Args:
            config: Planner configuration (loaded from YAML/env when None)
            offline: Use static default prices and gas, no network
            clock: Time source for the price cache

        Returns:
            VaultDeploymentPlanner
        """
        config = config or load_config()

        if offline:
            logger.info("📴 Offline mode: static prices and gas")
            return cls(config, StaticPriceSource.from_config(config))

        return cls(
            config,
            CcxtPriceSource.from_config(config, clock=clock),
            RpcGasOracle.from_config(config),
        )

    async def plan(
        self,
        primary_chain: str,
        operation_kind: str = OperationKind.VAULT_CREATION,
        security_level: int = 3,
        *,
        vault_type: Optional[str] = None,
        asset_type: Optional[str] = None,
        asset_amount: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> VaultCreationPlan:
        """
        Build a full deployment plan

        Args:
            primary_chain: Chain that holds the vault
            operation_kind: Operation to price
            security_level: 1..5
            vault_type: Free-form vault tag, echoed back
            asset_type: Free-form asset tag, echoed back
            asset_amount: Amount as a decimal string, echoed back
            timeout: Per-chain estimation deadline in seconds

        Returns:
            VaultCreationPlan

        Raises:
            InvalidChain: primary chain outside the universe
            InvalidSecurityLevel: level outside 1..5
        """
        primary = self.config.validate_chain(primary_chain)
        self.role_assigner.validate_security_level(security_level)

        comparison_task = asyncio.ensure_future(
            self.comparator.compare_all(operation_kind, timeout=timeout)
        )

        # Roles are pure, computed while the estimates are in flight
        try:
            assignment = self.role_assigner.assign(primary)
            deployment_order = self.role_assigner.deployment_priority(assignment.roles)
            security_config = SecurityConfig(
                level=security_level,
                requires_verification=self.role_assigner.requires_verification(primary, security_level),
            )
        except Exception:
            comparison_task.cancel()
            raise

        comparison = await comparison_task
        savings = self.role_assigner.calculate_fee_savings(primary, comparison.fee_usd_by_chain())

        plan = VaultCreationPlan(
            primary_chain=primary,
            operation_kind=operation_kind,
            roles=assignment,
            fee_estimates=dict(comparison.estimates),
            selected_fee=comparison.estimates[primary],
            cheapest_chain=comparison.recommended_chain,
            savings=savings,
            deployment_order=deployment_order,
            security_config=security_config,
            vault_type=vault_type,
            asset_type=asset_type,
            asset_amount=asset_amount,
        )

        logger.info(f"🏦 Plan: {primary} primary, verifiers {assignment.roles.verify1} + "
                    f"{assignment.roles.verify2}, level {security_level}, "
                    f"fee ${decimal_str(plan.selected_fee.fee_usd)}")
        return plan

    async def validate_selection(
        self,
        primary_chain: str,
        user_balance: Optional[Decimal] = None,
        operation_kind: str = OperationKind.VAULT_CREATION
    ) -> SelectionValidation:
        """
        Advisory check of a chosen primary chain

        Never blocks a selection: valid is always True.

        Args:
            primary_chain: Chosen chain
            user_balance: Balance in the chain's native token, if known
            operation_kind: Operation to price

        Returns:
            SelectionValidation with warnings and recommendations
        """
        primary = self.config.validate_chain(primary_chain)
        comparison = await self.comparator.compare_all(operation_kind)
        selected = comparison.estimates[primary]
        symbol = self.config.chain(primary).symbol

        warnings: List[str] = []
        recommendations: List[str] = []

        if selected.fee_usd > self.fee_warning_threshold:
            warnings.append(
                f"High fee on {primary}: ${decimal_str(selected.fee_usd)} "
                f"exceeds ${decimal_str(self.fee_warning_threshold)}"
            )

        if user_balance is not None:
            balance = Decimal(str(user_balance))
            needed = selected.fee_native * self.balance_safety_multiple
            if balance < needed:
                warnings.append(
                    f"Low balance: {decimal_str(balance)} {symbol} is below "
                    f"{decimal_str(needed)} {symbol} ({decimal_str(self.balance_safety_multiple)}x the estimated fee)"
                )

        if selected.congestion == CongestionLevel.HIGH:
            warnings.append(f"{primary} network is highly congested, confirmation may be slow")

        if comparison.recommended_chain != primary:
            cheapest = comparison.cheapest
            recommendations.append(
                f"Consider {cheapest.chain}: ${decimal_str(cheapest.fee_usd)} "
                f"vs ${decimal_str(selected.fee_usd)} on {primary}"
            )

        if warnings:
            logger.warning(f"⚠️  Selection {primary}: {len(warnings)} warning(s)")

        return SelectionValidation(valid=True, warnings=warnings, recommendations=recommendations)

    async def recommend(
        self,
        prefer_speed: bool = False,
        prefer_cost: bool = False,
        prefer_security: bool = False,
        operation_kind: str = OperationKind.VAULT_CREATION
    ) -> ChainRecommendation:
        """
        Recommend a primary chain from user preferences

        First match wins: speed, then cost, then security, otherwise balanced.

        Returns:
            ChainRecommendation; alternatives are the other chains in universe order
        """
        if prefer_speed:
            chain = self.speed_chain
            reason = f"{self._name(chain)} offers the fastest confirmations"
        elif prefer_cost:
            comparison = await self.comparator.compare_all(operation_kind)
            chain = comparison.recommended_chain
            reason = (f"{self._name(chain)} has the lowest {operation_kind} fee "
                      f"(${decimal_str(comparison.cheapest.fee_usd)})")
        elif prefer_security:
            chain = self.security_chain
            reason = f"{self._name(chain)} has the most battle-tested security and decentralization"
        else:
            chain = self.balanced_chain
            reason = f"{self._name(chain)} balances low fees with fast finality"

        alternatives = [c for c in self.config.universe if c != chain]
        logger.info(f"🎯 Recommended {chain}: {reason}")
        return ChainRecommendation(recommended=chain, reason=reason, alternatives=alternatives)

    async def recommend_for_operation(
        self,
        operation_kind: str,
        timeout: Optional[float] = None
    ) -> ChainRecommendation:
        """
        Cheapest chain for an operation, with savings vs the baseline chain

        Args:
            operation_kind: Operation to price
            timeout: Per-chain estimation deadline in seconds

        Returns:
            ChainRecommendation with all options ranked cheapest first
        """
        comparison = await self.comparator.compare_all(operation_kind, timeout=timeout)
        ranked = self.comparator.ranked(comparison)
        chain = comparison.recommended_chain
        savings = self.role_assigner.calculate_fee_savings(chain, comparison.fee_usd_by_chain())

        return ChainRecommendation(
            recommended=chain,
            reason=(f"{self._name(chain)} has the lowest {operation_kind} fee "
                    f"(${decimal_str(comparison.cheapest.fee_usd)})"),
            alternatives=[e.chain for e in ranked if e.chain != chain],
            savings_vs_baseline=savings,
            all_options=ranked,
        )

    async def compare(self, operation_kind: str, timeout: Optional[float] = None) -> ChainComparison:
        return await self.comparator.compare_all(operation_kind, timeout=timeout)

    def chain_info(self, chain: str) -> ChainInfo:
        """Static metadata for one chain"""
        settings = self.config.chain(chain)
        return ChainInfo(
            chain=settings.chain_id,
            name=settings.name,
            symbol=settings.symbol,
            average_block_time_seconds=settings.average_block_time_seconds,
            ecosystem=settings.ecosystem,
            explorer_url=settings.explorer_url,
        )

    def _name(self, chain: str) -> str:
        return self.config.chains[chain].name

    async def close(self):
        """Release price feed and RPC connections"""
        await self.price_source.close()
        if self.gas_oracle is not None:
            await self.gas_oracle.close()
        logger.info("👋 Planner closed")


async def graceful_shutdown(planner: VaultDeploymentPlanner, timeout: float = 10.0):
    """
    Close the planner's connections without hanging the event loop

    Args:
        planner: Planner to shut down
        timeout: Maximum time to wait for connections to close (seconds)

    Example:
        planner = VaultDeploymentPlanner.from_config()
        try:
            # ... use planner ...
        finally:
            await graceful_shutdown(planner)
    """
    try:
        await asyncio.wait_for(planner.close(), timeout=timeout)
        # aiohttp transports need a loop turn to finish closing
        await asyncio.sleep(0.25)
    except asyncio.TimeoutError:
        logger.warning(f"⏰ Shutdown exceeded {timeout}s, abandoning open connections")
    except Exception as e:
        logger.warning(f"Error during shutdown: {e}")
