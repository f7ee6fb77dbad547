"""Market collaborators."""
from .simulated import SimulatedMarket

__all__ = ["SimulatedMarket"]
