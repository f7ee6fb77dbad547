"""Price oracle protocol — price lookup for the risk engine."""
from typing import Protocol


class PriceOracle(Protocol):
    """Return the engine-convention price of a market's underlying asset.

    Raises an ``OracleError`` subclass when no price can be produced.
    """

    def get_underlying_price(self, asset: str) -> int: ...
