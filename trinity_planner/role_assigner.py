"""
Trinity Role Assigner

Maps a primary chain to the full 3-chain role set.

Fixed orders:
- verifier slots: universe order with the primary removed (verify1 first)
- deployment: verify1, verify2, primary (verifiers must exist before the
  primary contract can reference them)

Verification policy by security level (thresholds configurable):
- level 1-2: no verifier required
- level 3-4: verify1 required
- level 5:   verify1 and verify2 required
The primary chain is never its own verifier.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from .config import TrinityConfig
from .errors import InvalidSecurityLevel
from .models import FeeSavings, RoleAssignment, TrinityRoles

MIN_SECURITY_LEVEL = 1
MAX_SECURITY_LEVEL = 5

PRIMARY_RESPONSIBILITY = (
    "Primary vault: holds the vault contract and assets, executes operations "
    "once the required verifiers confirm"
)
VERIFIER_RESPONSIBILITY = (
    "Verifier: independently confirms vault operations reported by {primary} "
    "before they are considered valid"
)


class TrinityRoleAssigner:
    """Pure, deterministic role assignment over the configured universe"""

    def __init__(self, config: TrinityConfig):
        self.config = config
        self.universe = list(config.universe)
        self.single_verifier_level = config.verification['single_verifier_level']
        self.dual_verifier_level = config.verification['dual_verifier_level']

    def roles_for(self, primary_chain: str) -> TrinityRoles:
        primary = self.config.validate_chain(primary_chain)
        verify1, verify2 = [chain for chain in self.universe if chain != primary]
        return TrinityRoles(primary=primary, verify1=verify1, verify2=verify2)

    def assign(self, primary_chain: str) -> RoleAssignment:
        """
        Assign primary and verifier roles

        Args:
            primary_chain: Chain chosen by the user

        Returns:
            RoleAssignment with roles, per-chain responsibilities and a summary
        """
        roles = self.roles_for(primary_chain)
        names = {chain: self.config.chains[chain].name for chain in self.universe}

        responsibilities = {roles.primary: PRIMARY_RESPONSIBILITY}
        for verifier in roles.verifiers:
            responsibilities[verifier] = VERIFIER_RESPONSIBILITY.format(primary=names[roles.primary])

        description = (
            f"{names[roles.primary]} is the primary vault chain, "
            f"secured by {names[roles.verify1]} + {names[roles.verify2]}"
        )

        return RoleAssignment(roles=roles, responsibilities=responsibilities, description=description)

    def deployment_priority(self, roles: TrinityRoles) -> List[str]:
        """Deployment order: both verifiers, then the primary"""
        return [roles.verify1, roles.verify2, roles.primary]

    def validate_security_level(self, security_level) -> int:
        if isinstance(security_level, bool) or not isinstance(security_level, int):
            raise InvalidSecurityLevel(security_level, MIN_SECURITY_LEVEL, MAX_SECURITY_LEVEL)
        if not MIN_SECURITY_LEVEL <= security_level <= MAX_SECURITY_LEVEL:
            raise InvalidSecurityLevel(security_level, MIN_SECURITY_LEVEL, MAX_SECURITY_LEVEL)
        return security_level

    def required_verifier_count(self, security_level: int) -> int:
        level = self.validate_security_level(security_level)
        if level >= self.dual_verifier_level:
            return 2
        if level >= self.single_verifier_level:
            return 1
        return 0

    def requires_verification(self, primary_chain: str, security_level: int) -> Dict[str, bool]:
        """
        Which chains must verify an operation

        Monotonic in security_level: a higher level never drops a chain.

        Args:
            primary_chain: Primary chain
            security_level: 1..5

        Returns:
            Dict chain -> required, covering the whole universe
        """
        roles = self.roles_for(primary_chain)
        count = self.required_verifier_count(security_level)
        required = set(roles.verifiers[:count])
        return {chain: chain in required for chain in self.universe}

    def calculate_fee_savings(
        self,
        primary_chain: str,
        fee_usd_by_chain: Dict[str, Decimal],
        baseline_chain: Optional[str] = None
    ) -> FeeSavings:
        """
        Savings of the primary chain's own fee versus the baseline chain

        This is not the cheapest-vs-most-expensive figure from the comparator.

        Args:
            primary_chain: Chain the user picked
            fee_usd_by_chain: USD fee per chain
            baseline_chain: Reference chain (config baseline when None)

        Returns:
            FeeSavings; negative when the primary costs more than the baseline
        """
        primary = self.config.validate_chain(primary_chain)
        baseline = self.config.validate_chain(baseline_chain or self.config.baseline_chain)

        selected_fee = Decimal(str(fee_usd_by_chain[primary]))
        baseline_fee = Decimal(str(fee_usd_by_chain[baseline]))
        savings = baseline_fee - selected_fee

        if baseline_fee > 0:
            percent = (savings / baseline_fee * 100).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
        else:
            percent = Decimal('0.0')

        return FeeSavings(
            selected_fee=selected_fee,
            baseline_chain=baseline,
            baseline_fee=baseline_fee,
            savings_usd=savings.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP),
            percent_saved=percent,
        )
