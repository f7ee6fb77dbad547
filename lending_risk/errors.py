"""Error codes and exceptions shared by the risk engine and the price oracle."""
from __future__ import annotations

import logging
from enum import IntEnum

logger = logging.getLogger(__name__)


class Error(IntEnum):
    """Result codes returned by hooks, membership operations and setters."""

    NO_ERROR = 0
    UNAUTHORIZED = 1
    ENGINE_MISMATCH = 2
    INSUFFICIENT_SHORTFALL = 3
    INSUFFICIENT_LIQUIDITY = 4
    INVALID_COLLATERAL_FACTOR = 5
    INVALID_MARKET = 6
    MARKET_NOT_LISTED = 7
    MARKET_ALREADY_LISTED = 8
    NONZERO_BORROW_BALANCE = 9
    PRICE_ERROR = 10
    REJECTION = 11
    SNAPSHOT_ERROR = 12
    TOO_MUCH_REPAY = 13
    BORROW_CAP_REACHED = 14


class FailureInfo(IntEnum):
    """Which operation produced a failure code."""

    EXIT_MARKET_BALANCE_OWED = 0
    EXIT_MARKET_REJECTION = 1
    EXIT_MARKET_SNAPSHOT_FAILED = 2
    SET_CLASSIFICATION_NO_EXISTS = 3
    SET_CLASSIFICATION_OWNER_CHECK = 4
    SET_COLLATERAL_FACTOR_NO_EXISTS = 5
    SET_COLLATERAL_FACTOR_OWNER_CHECK = 6
    SET_COLLATERAL_FACTOR_VALIDATION = 7
    SET_COLLATERAL_FACTOR_WITHOUT_PRICE = 8
    SET_LIQUIDATION_INCENTIVE_OWNER_CHECK = 9
    SET_PRICE_ORACLE_OWNER_CHECK = 10
    SET_SEGREGATION_MODE_OWNER_CHECK = 11
    SUPPORT_MARKET_EXISTS = 12
    SUPPORT_MARKET_INVALID = 13
    SUPPORT_MARKET_OWNER_CHECK = 14


def fail(err: Error, info: FailureInfo) -> Error:
    """Record a setter failure and hand the code back to the caller."""
    logger.warning("Failure: %s (%s)", err.name, info.name)
    return err


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RiskEngineError(Exception):
    """Base class for hard failures raised by this package."""


class UnauthorizedError(RiskEngineError):
    """Caller lacks the role required by an admin or guardian path."""


class InvariantViolation(RiskEngineError):
    """Internal state is inconsistent; the whole call must be aborted."""


class OracleError(RiskEngineError):
    """Base class for price oracle failures."""


class MarketNotConfiguredError(OracleError):
    def __init__(self, asset: str) -> None:
        super().__init__(f"Market not configured: {asset}")
        self.asset = asset


class PriceNotFoundError(OracleError):
    def __init__(self, asset: str) -> None:
        super().__init__(f"No usable price for {asset}")
        self.asset = asset


class InvalidConfigurationError(OracleError):
    """An asset config batch failed validation; nothing was applied."""
