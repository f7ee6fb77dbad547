"""Price source protocols — deterministic and probabilistic feeds."""
from typing import Protocol

from ..models import PythPrice, RoundData


class DeterministicFeed(Protocol):
    """Aggregator-style feed reporting a single answer per round."""

    @property
    def decimals(self) -> int: ...

    def latest_round_data(self) -> RoundData: ...


class ProbabilisticFeed(Protocol):
    """Feed reporting a price with a confidence band, keyed by feed id."""

    def get_price_unsafe(self, feed_id: str) -> PythPrice: ...
