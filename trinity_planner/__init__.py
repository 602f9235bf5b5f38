"""
Trinity Vault Deployment Planner

Plans where a multi-chain vault is deployed: one primary chain holds the vault,
the other two chains verify it.

Components:
- price_source: Native token USD prices (CCXT, TTL cache, fallback defaults)
- gas_oracle: Live gas price for the fee-market chain
- fee_estimator: Per-chain, per-operation fee estimates
- chain_comparator: Concurrent 3-chain comparison and cheapest-chain pick
- role_assigner: Primary/verifier roles and verification policy
- planner: Vault deployment plans, selection checks and recommendations
- fee_history: SQLite-based estimate and plan logging
- api: FastAPI HTTP boundary

Verification by security level:
- Level 1-2: primary only
- Level 3-4: primary + first verifier
- Level 5: primary + both verifiers
"""

from .config import (
    TrinityConfig,
    load_config,
    default_config,
)
from .errors import (
    TrinityPlannerError,
    InvalidChain,
    InvalidSecurityLevel,
    UpstreamPriceUnavailable,
    EstimationFailure,
    ConfigError,
)
from .models import (
    ChainId,
    CongestionLevel,
    OperationKind,
    FeeEstimate,
    ChainComparison,
    TrinityRoles,
    VaultCreationPlan,
    ChainRecommendation,
)
from .price_source import (
    PriceSource,
    StaticPriceSource,
    CcxtPriceSource,
)
from .fee_estimator import FeeEstimator
from .chain_comparator import ChainComparator
from .role_assigner import TrinityRoleAssigner
from .planner import (
    VaultDeploymentPlanner,
    graceful_shutdown,
)
from .fee_history import FeeHistoryDB

__all__ = [
    # Configuration
    'TrinityConfig',
    'load_config',
    'default_config',

    # Errors
    'TrinityPlannerError',
    'InvalidChain',
    'InvalidSecurityLevel',
    'UpstreamPriceUnavailable',
    'EstimationFailure',
    'ConfigError',

    # Data model
    'ChainId',
    'CongestionLevel',
    'OperationKind',
    'FeeEstimate',
    'ChainComparison',
    'TrinityRoles',
    'VaultCreationPlan',
    'ChainRecommendation',

    # Fees
    'PriceSource',
    'StaticPriceSource',
    'CcxtPriceSource',
    'FeeEstimator',
    'ChainComparator',

    # Planning
    'TrinityRoleAssigner',
    'VaultDeploymentPlanner',
    'graceful_shutdown',

    # History tracking
    'FeeHistoryDB',
]

__version__ = '1.0.0'
__author__ = 'Trinity Planner'
__description__ = 'Multi-chain vault deployment planner'
