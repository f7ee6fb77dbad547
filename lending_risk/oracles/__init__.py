"""Price oracle and feed sources."""
from .feeds import ManualAggregator
from .hermes import HermesPriceBoard
from .price_oracle import DualFeedPriceOracle

__all__ = ["DualFeedPriceOracle", "HermesPriceBoard", "ManualAggregator"]
