"""
Planner Data Model

Immutable value objects produced fresh for every planning request.
Decimal amounts are serialized as plain decimal strings.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ChainId(str, Enum):
    """Reference 3-chain universe"""
    ETHEREUM = 'ethereum'  # fee-market chain
    SOLANA = 'solana'      # high-throughput chain
    TON = 'ton'            # low-fee chain

    def __str__(self):
        return self.value


class CongestionLevel(str, Enum):
    """Ordered network load classification: low < medium < high"""
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'

    @property
    def rank(self) -> int:
        return _CONGESTION_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, CongestionLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, CongestionLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, CongestionLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, CongestionLevel):
            return NotImplemented
        return self.rank >= other.rank


_CONGESTION_ORDER = [CongestionLevel.LOW, CongestionLevel.MEDIUM, CongestionLevel.HIGH]


class EstimateSource(str, Enum):
    """Where a fee estimate came from"""
    LIVE = 'live'
    FALLBACK = 'fallback'


class OperationKind:
    """Well-known operation tags. Any other string is accepted too."""
    VAULT_CREATION = 'vault_creation'
    WITHDRAWAL = 'withdrawal'
    TRANSFER = 'transfer'
    SWAP = 'swap'


def decimal_str(value: Decimal) -> str:
    """Render a Decimal without exponent or trailing zeros"""
    if value == 0:
        return '0'
    return format(value.normalize(), 'f')


@dataclass(frozen=True)
class FeeEstimate:
    """Fee estimate for one chain and one operation"""
    chain: str
    operation_kind: str
    fee_native: Decimal
    fee_usd: Decimal
    native_price_usd: Decimal
    congestion: CongestionLevel
    estimated_confirm_seconds: int
    source: EstimateSource = EstimateSource.LIVE
    fallback_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return self.source == EstimateSource.FALLBACK

    def to_dict(self) -> Dict:
        data = {
            'chain': self.chain,
            'operationType': self.operation_kind,
            'estimatedFee': decimal_str(self.fee_native),
            'estimatedFeeUsd': decimal_str(self.fee_usd),
            'nativePriceUsd': decimal_str(self.native_price_usd),
            'congestion': self.congestion.value,
            'estimatedConfirmSeconds': self.estimated_confirm_seconds,
            'source': self.source.value,
            'metadata': dict(self.metadata),
        }
        if self.fallback_reason:
            data['fallbackReason'] = self.fallback_reason
        return data

    def __repr__(self):
        return (f"FeeEstimate({self.chain}/{self.operation_kind}: "
                f"${decimal_str(self.fee_usd)}, {self.congestion.value}, {self.source.value})")


@dataclass(frozen=True)
class EstimateResult:
    """Tagged estimation outcome: real data or fallback data plus the reason"""
    estimate: FeeEstimate
    is_fallback: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class Savings:
    amount_usd_vs_most_expensive: Decimal
    percent: Decimal

    def to_dict(self) -> Dict:
        return {
            'amountUsd': decimal_str(self.amount_usd_vs_most_expensive),
            'percent': decimal_str(self.percent),
        }


@dataclass(frozen=True)
class ChainComparison:
    """One estimate per chain, the cheapest chain and its savings"""
    operation_kind: str
    estimates: Dict[str, FeeEstimate]
    recommended_chain: str
    savings: Savings

    @property
    def cheapest(self) -> FeeEstimate:
        return self.estimates[self.recommended_chain]

    def fee_usd_by_chain(self) -> Dict[str, Decimal]:
        return {chain: estimate.fee_usd for chain, estimate in self.estimates.items()}

    def to_dict(self) -> Dict:
        data = {chain: estimate.to_dict() for chain, estimate in self.estimates.items()}
        data['recommendation'] = self.recommended_chain
        data['savings'] = self.savings.to_dict()
        return data


@dataclass(frozen=True)
class TrinityRoles:
    primary: str
    verify1: str
    verify2: str

    @property
    def verifiers(self) -> Tuple[str, str]:
        return (self.verify1, self.verify2)

    def as_tuple(self) -> Tuple[str, str, str]:
        return (self.primary, self.verify1, self.verify2)

    def to_dict(self) -> Dict:
        return {'primary': self.primary, 'verify1': self.verify1, 'verify2': self.verify2}


@dataclass(frozen=True)
class RoleAssignment:
    """Roles plus the human-readable text shown to the user"""
    roles: TrinityRoles
    responsibilities: Dict[str, str]
    description: str

    def to_dict(self) -> Dict:
        return {
            **self.roles.to_dict(),
            'responsibilities': dict(self.responsibilities),
            'description': self.description,
        }


@dataclass(frozen=True)
class FeeSavings:
    """Primary chain's own fee compared to the baseline chain"""
    selected_fee: Decimal
    baseline_chain: str
    baseline_fee: Decimal
    savings_usd: Decimal
    percent_saved: Decimal

    def to_dict(self) -> Dict:
        return {
            'selectedFee': decimal_str(self.selected_fee),
            'baselineChain': self.baseline_chain,
            'vsBaseline': decimal_str(self.baseline_fee),
            'savingsUsd': decimal_str(self.savings_usd),
            'percentSaved': decimal_str(self.percent_saved),
        }


@dataclass(frozen=True)
class SecurityConfig:
    level: int
    requires_verification: Dict[str, bool]

    @property
    def required_chains(self) -> List[str]:
        return [chain for chain, required in self.requires_verification.items() if required]

    def to_dict(self) -> Dict:
        return {'level': self.level, 'requiresVerification': dict(self.requires_verification)}


@dataclass(frozen=True)
class VaultCreationPlan:
    """Aggregate output of a planning request"""
    primary_chain: str
    operation_kind: str
    roles: RoleAssignment
    fee_estimates: Dict[str, FeeEstimate]
    selected_fee: FeeEstimate
    cheapest_chain: str
    savings: FeeSavings
    deployment_order: List[str]
    security_config: SecurityConfig
    vault_type: Optional[str] = None
    asset_type: Optional[str] = None
    asset_amount: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'primaryChain': self.primary_chain,
            'operationType': self.operation_kind,
            'vaultType': self.vault_type,
            'assetType': self.asset_type,
            'assetAmount': self.asset_amount,
            'trinityRoles': self.roles.to_dict(),
            'feeEstimates': {chain: e.to_dict() for chain, e in self.fee_estimates.items()},
            'selectedFee': self.selected_fee.to_dict(),
            'cheapestChain': self.cheapest_chain,
            'savings': self.savings.to_dict(),
            'deploymentOrder': list(self.deployment_order),
            'securityConfig': self.security_config.to_dict(),
        }


@dataclass(frozen=True)
class SelectionValidation:
    valid: bool
    warnings: List[str]
    recommendations: List[str]

    def to_dict(self) -> Dict:
        return {
            'valid': self.valid,
            'warnings': list(self.warnings),
            'recommendations': list(self.recommendations),
        }


@dataclass(frozen=True)
class ChainRecommendation:
    recommended: str
    reason: str
    alternatives: List[str]
    savings_vs_baseline: Optional[FeeSavings] = None
    all_options: Optional[List[FeeEstimate]] = None

    def to_dict(self) -> Dict:
        data = {
            'recommended': self.recommended,
            'reason': self.reason,
            'alternatives': list(self.alternatives),
        }
        if self.savings_vs_baseline is not None:
            data['savingsVsBaseline'] = self.savings_vs_baseline.to_dict()
        if self.all_options is not None:
            data['allOptions'] = [e.to_dict() for e in self.all_options]
        return data


@dataclass(frozen=True)
class ChainInfo:
    """Static descriptive metadata for one chain"""
    chain: str
    name: str
    symbol: str
    average_block_time_seconds: float
    ecosystem: str
    explorer_url: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'chain': self.chain,
            'name': self.name,
            'symbol': self.symbol,
            'averageBlockTimeSeconds': self.average_block_time_seconds,
            'ecosystem': self.ecosystem,
            'explorerUrl': self.explorer_url,
        }
