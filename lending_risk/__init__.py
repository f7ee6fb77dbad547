"""Solvency engine and dual-feed price oracle for a collateralized lending protocol."""
from .engine import RiskEngine
from .errors import Error
from .models import Action, Classification, Valuation
from .oracles import DualFeedPriceOracle

__all__ = [
    "Action",
    "Classification",
    "DualFeedPriceOracle",
    "Error",
    "RiskEngine",
    "Valuation",
]
