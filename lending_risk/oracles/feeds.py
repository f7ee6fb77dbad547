"""Feed adapters — turn raw source reads into normalized readings.

Every failure mode (call error, non-positive price, stale timestamp, too
wide a confidence band) collapses to ``UNUSABLE`` here, so price selection
only ever compares two readings.
"""
from __future__ import annotations

import logging

from ..fixed_point import INTERNAL_PRICE_DECIMALS, rescale, rescale_expo
from ..interfaces.feeds import DeterministicFeed, ProbabilisticFeed
from ..models import UNUSABLE, FeedReading, RoundData, Valuation

logger = logging.getLogger(__name__)


def _is_stale(timestamp: int, max_age: int, now: int) -> bool:
    return timestamp < now - max_age


def read_deterministic(
    feed: DeterministicFeed | None, max_age: int, now: int
) -> FeedReading:
    """Read an aggregator-style feed and rescale it to internal decimals."""
    if feed is None:
        return UNUSABLE

    try:
        round_data = feed.latest_round_data()
        decimals = feed.decimals
    except Exception as e:
        logger.warning("Deterministic feed call failed: %s", e)
        return UNUSABLE

    if round_data.answer <= 0:
        logger.debug("Deterministic feed answer not positive: %d", round_data.answer)
        return UNUSABLE
    if _is_stale(round_data.updated_at, max_age, now):
        logger.debug(
            "Deterministic feed stale: updated_at=%d now=%d max_age=%d",
            round_data.updated_at, now, max_age,
        )
        return UNUSABLE

    price = rescale(round_data.answer, decimals, INTERNAL_PRICE_DECIMALS)
    if price == 0:
        return UNUSABLE
    return FeedReading(price=price, timestamp=round_data.updated_at)


def read_probabilistic(
    feed: ProbabilisticFeed | None,
    feed_id: str,
    max_age: int,
    now: int,
    valuation: Valuation,
) -> FeedReading:
    """Read a confidence-banded feed and take the conservative edge.

    A band at least as wide as the price itself makes the source unusable.
    """
    if feed is None or not feed_id:
        return UNUSABLE

    try:
        update = feed.get_price_unsafe(feed_id)
    except Exception as e:
        logger.warning("Probabilistic feed %s call failed: %s", feed_id, e)
        return UNUSABLE

    if update.price <= 0:
        logger.debug("Probabilistic feed %s price not positive", feed_id)
        return UNUSABLE
    if _is_stale(update.publish_time, max_age, now):
        logger.debug(
            "Probabilistic feed %s stale: publish_time=%d now=%d",
            feed_id, update.publish_time, now,
        )
        return UNUSABLE

    price = rescale_expo(update.price, update.expo, INTERNAL_PRICE_DECIMALS)
    conf = rescale_expo(update.conf, update.expo, INTERNAL_PRICE_DECIMALS)
    if conf >= price:
        logger.debug(
            "Probabilistic feed %s confidence %d >= price %d", feed_id, conf, price
        )
        return UNUSABLE

    if valuation is Valuation.COLLATERAL:
        adjusted = price - conf
    else:
        adjusted = price + conf
    return FeedReading(price=adjusted, timestamp=update.publish_time)


def select_reading(deterministic: FeedReading, probabilistic: FeedReading) -> FeedReading:
    """Pick the strictly more recent usable reading.

    Equal timestamps go to the deterministic source; an unusable reading
    carries timestamp 0 and so never beats a usable one.
    """
    if probabilistic.timestamp > deterministic.timestamp:
        return probabilistic
    if deterministic.usable:
        return deterministic
    return probabilistic


class ManualAggregator:
    """In-memory deterministic feed whose rounds are pushed by hand."""

    def __init__(self, decimals: int, answer: int = 0, updated_at: int = 0) -> None:
        self._decimals = decimals
        self._round = RoundData(answer=answer, updated_at=updated_at)

    @property
    def decimals(self) -> int:
        return self._decimals

    def update(self, answer: int, updated_at: int) -> None:
        self._round = RoundData(answer=answer, updated_at=updated_at)

    def latest_round_data(self) -> RoundData:
        return self._round
