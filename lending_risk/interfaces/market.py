"""Market token protocol — the lending market collaborator."""
from typing import Any, Protocol

from ..models import AccountSnapshot


class MarketToken(Protocol):
    """Narrow read surface of a lending market consumed by the risk engine."""

    address: str
    underlying: str
    is_market_token: bool
    risk_engine: Any

    @property
    def total_borrows(self) -> int: ...

    @property
    def reserve_factor_mantissa(self) -> int: ...

    def get_account_snapshot(self, account: str) -> AccountSnapshot: ...

    def borrow_balance_stored(self, account: str) -> int: ...

    def exchange_rate_stored(self) -> int: ...
