"""
Planner Errors

Only InvalidChain and InvalidSecurityLevel ever reach a caller. The others are
raised inside the price/fee layers and recovered there.
"""

from typing import Iterable, List, Optional


class TrinityPlannerError(Exception):
    """Base class for all planner errors"""


class InvalidChain(TrinityPlannerError):
    """Chain id outside the configured 3-chain universe"""

    def __init__(self, chain: Optional[str], valid: Iterable[str]):
        self.chain = chain
        self.valid: List[str] = list(valid)
        super().__init__(
            f"Unsupported chain '{chain}'. Valid chains: {', '.join(self.valid)}"
        )


class InvalidSecurityLevel(TrinityPlannerError):
    """Security level outside 1..5"""

    def __init__(self, level, minimum: int = 1, maximum: int = 5):
        self.level = level
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Security level must be between {minimum} and {maximum}, got {level!r}"
        )


class UpstreamPriceUnavailable(TrinityPlannerError):
    """Price feed failed or timed out"""

    def __init__(self, token: str, reason: str):
        self.token = token
        self.reason = reason
        super().__init__(f"Price for {token} unavailable: {reason}")


class EstimationFailure(TrinityPlannerError):
    """Fee computation failed for one chain"""

    def __init__(self, chain: str, operation_kind: str, reason: str):
        self.chain = chain
        self.operation_kind = operation_kind
        self.reason = reason
        super().__init__(f"Fee estimation failed for {chain}/{operation_kind}: {reason}")


class ConfigError(TrinityPlannerError):
    """Configuration is structurally invalid"""
