"""Dual-source price oracle with confidence-adjusted fallback."""
from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from ..errors import (
    InvalidConfigurationError,
    MarketNotConfiguredError,
    PriceNotFoundError,
    UnauthorizedError,
)
from ..fixed_point import InternalPrice, to_external_price
from ..interfaces.feeds import ProbabilisticFeed
from ..models import AssetPriceConfig
from .feeds import read_deterministic, read_probabilistic, select_reading

logger = logging.getLogger(__name__)


def _validate_config(asset: str, config: AssetPriceConfig) -> None:
    if not asset:
        raise InvalidConfigurationError("Asset identity must be set")
    if not config.underlying:
        raise InvalidConfigurationError(f"Asset {asset} has no underlying")
    if config.base_unit == 0:
        raise InvalidConfigurationError(f"Asset {asset} has zero base unit")
    if config.max_price_age == 0:
        raise InvalidConfigurationError(f"Asset {asset} has zero max price age")


class DualFeedPriceOracle:
    """Price every configured asset from a deterministic and a probabilistic feed.

    Nothing is cached between calls: each query re-reads both sources.
    """

    def __init__(
        self,
        admin: str,
        probabilistic_feed: ProbabilisticFeed | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.admin = admin
        self._probabilistic_feed = probabilistic_feed
        self._clock = clock or (lambda: int(time.time()))
        self._configs: dict[str, AssetPriceConfig] = {}

    def set_asset_configs(
        self,
        caller: str,
        assets: Sequence[str],
        configs: Sequence[AssetPriceConfig],
    ) -> None:
        """Validate the whole batch, then apply it. Invalid batches change nothing."""
        if caller != self.admin:
            raise UnauthorizedError("Only admin can set asset configs")
        if len(assets) != len(configs):
            raise InvalidConfigurationError(
                f"Got {len(assets)} assets but {len(configs)} configs"
            )

        for asset, config in zip(assets, configs):
            _validate_config(asset, config)

        for asset, config in zip(assets, configs):
            self._configs[asset] = config
            logger.info(
                "Asset config set: %s underlying=%s base_unit=%d max_age=%ds valuation=%s",
                asset, config.underlying, config.base_unit,
                config.max_price_age, config.valuation.value,
            )

    def get_asset_config(self, asset: str) -> AssetPriceConfig:
        config = self._configs.get(asset)
        if config is None:
            raise MarketNotConfiguredError(asset)
        return config

    def get_internal_price(self, asset: str) -> InternalPrice:
        """Select the freshest usable reading for ``asset`` at internal decimals."""
        config = self.get_asset_config(asset)
        now = self._clock()

        deterministic = read_deterministic(
            config.deterministic_feed, config.max_price_age, now
        )
        probabilistic = read_probabilistic(
            self._probabilistic_feed,
            config.probabilistic_feed_id,
            config.max_price_age,
            now,
            config.valuation,
        )
        selected = select_reading(deterministic, probabilistic)
        if not selected.usable:
            raise PriceNotFoundError(asset)
        return InternalPrice(selected.price)

    def get_underlying_price(self, asset: str) -> int:
        """Price of one base unit of ``asset``'s underlying, scaled by 1e30."""
        config = self.get_asset_config(asset)
        return to_external_price(self.get_internal_price(asset), config.base_unit)
