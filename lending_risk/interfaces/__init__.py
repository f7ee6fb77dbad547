"""Protocol interfaces for the risk engine's collaborators."""
from .feeds import DeterministicFeed, ProbabilisticFeed
from .market import MarketToken
from .price_oracle import PriceOracle

__all__ = ["DeterministicFeed", "MarketToken", "PriceOracle", "ProbabilisticFeed"]
