"""Data models. Frozen where the engine replaces rather than mutates."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import Error

if TYPE_CHECKING:
    from .interfaces.feeds import DeterministicFeed
    from .interfaces.market import MarketToken


class Classification(Enum):
    """Bucket a market belongs to under segregation mode."""

    UNCLASSIFIED = 0
    TYPE_A = 1
    TYPE_B = 2


class Action(Enum):
    """Pausable market actions."""

    MINT = "mint"
    BORROW = "borrow"
    TRANSFER = "transfer"
    SEIZE = "seize"


class Valuation(Enum):
    """Which side of a position an asset is priced for.

    Collateral takes the low edge of the confidence band, borrowed assets
    take the high edge.
    """

    COLLATERAL = "collateral"
    BORROWED = "borrowed"


@dataclass(frozen=True)
class Market:
    """Registry entry for a listed market."""

    address: str
    token: MarketToken = field(compare=False, repr=False)
    is_listed: bool = True
    collateral_factor_mantissa: int = 0
    borrow_cap: int = 0
    classification: Classification = Classification.UNCLASSIFIED
    paused: frozenset[Action] = frozenset()

    def is_paused(self, action: Action) -> bool:
        return action in self.paused


@dataclass(frozen=True)
class AccountSnapshot:
    """Balance read returned by a market for one account."""

    error: Error
    token_balance: int
    borrow_balance: int
    exchange_rate_mantissa: int


@dataclass(frozen=True)
class PooledLiquidity:
    """Single-ledger health. At most one field is positive."""

    liquidity: int = 0
    shortfall: int = 0


@dataclass(frozen=True)
class SegregatedLiquidity:
    """Two-bucket health.

    ``liquidity_a``/``shortfall_a`` compare TypeA collateral with TypeB
    borrows plus effects; ``liquidity_b``/``shortfall_b`` compare TypeB
    collateral with TypeA borrows plus effects.
    """

    liquidity_a: int = 0
    shortfall_a: int = 0
    liquidity_b: int = 0
    shortfall_b: int = 0

    def shortfall_backing(self, borrowed: Classification) -> int:
        """Shortfall of the bucket whose collateral backs ``borrowed`` debt."""
        if borrowed is Classification.TYPE_A:
            return self.shortfall_b
        if borrowed is Classification.TYPE_B:
            return self.shortfall_a
        return 0


# ---------------------------------------------------------------------------
# Price oracle models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetPriceConfig:
    """Per-asset oracle settings, applied in atomic batches."""

    underlying: str
    base_unit: int
    deterministic_feed: DeterministicFeed | None = field(default=None, compare=False)
    probabilistic_feed_id: str = ""
    max_price_age: int = 0
    valuation: Valuation = Valuation.COLLATERAL


@dataclass(frozen=True)
class RoundData:
    """Latest answer of a deterministic (aggregator-style) feed."""

    answer: int
    updated_at: int


@dataclass(frozen=True)
class PythPrice:
    """Probabilistic feed update: ``price ± conf`` scaled by ``10**expo``."""

    price: int
    conf: int
    expo: int
    publish_time: int

    @classmethod
    def from_hermes(cls, payload: dict[str, Any]) -> PythPrice:
        return cls(
            price=int(payload.get("price", 0)),
            conf=int(payload.get("conf", 0)),
            expo=int(payload.get("expo", 0)),
            publish_time=int(payload.get("publish_time", 0)),
        )


@dataclass(frozen=True)
class FeedReading:
    """Normalized source output. ``(0, 0)`` marks an unusable source."""

    price: int = 0
    timestamp: int = 0

    @property
    def usable(self) -> bool:
        return self.price > 0


UNUSABLE = FeedReading()
