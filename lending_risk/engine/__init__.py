"""Risk engine: registry, membership and liquidity."""
from .membership import MembershipIndex
from .risk_engine import COLLATERAL_FACTOR_MAX_MANTISSA, RiskEngine

__all__ = ["COLLATERAL_FACTOR_MAX_MANTISSA", "MembershipIndex", "RiskEngine"]
