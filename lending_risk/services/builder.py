"""Wire an engine, oracle, feeds and simulated markets from configuration."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..config import AppConfig
from ..engine.risk_engine import RiskEngine
from ..errors import Error
from ..models import AssetPriceConfig
from ..markets.simulated import SimulatedMarket
from ..oracles.feeds import ManualAggregator
from ..oracles.hermes import HermesPriceBoard
from ..oracles.price_oracle import DualFeedPriceOracle

logger = logging.getLogger(__name__)


@dataclass
class Deployment:
    engine: RiskEngine
    oracle: DualFeedPriceOracle
    board: HermesPriceBoard
    markets: dict[str, SimulatedMarket] = field(default_factory=dict)
    aggregators: dict[str, ManualAggregator] = field(default_factory=dict)


def build_deployment(
    config: AppConfig, clock: Callable[[], int] | None = None
) -> Deployment:
    """List every configured market and register its price feeds.

    Risk parameters are applied separately by ``apply_risk_parameters``
    because a nonzero collateral factor needs a live price.
    """
    clock = clock or (lambda: int(time.time()))
    now = clock()

    board = HermesPriceBoard(config.oracle.hermes_url, config.oracle.hermes_timeout)
    oracle = DualFeedPriceOracle(config.oracle.admin, board, clock)
    engine = RiskEngine(
        admin=config.engine.admin,
        oracle=oracle,
        close_factor_mantissa=config.engine.close_factor_mantissa,
        liquidation_incentive_mantissa=config.engine.liquidation_incentive_mantissa,
    )
    deployment = Deployment(engine=engine, oracle=oracle, board=board)

    assets: list[str] = []
    price_configs: list[AssetPriceConfig] = []
    for m in config.markets:
        aggregator = ManualAggregator(
            decimals=m.price.feed_decimals,
            answer=m.price.answer,
            updated_at=m.price.updated_at or now,
        )
        deployment.aggregators[m.address] = aggregator
        assets.append(m.address)
        price_configs.append(
            AssetPriceConfig(
                underlying=m.underlying,
                base_unit=m.price.base_unit,
                deterministic_feed=aggregator,
                probabilistic_feed_id=m.price.pyth_feed_id,
                max_price_age=m.price.max_price_age,
                valuation=m.price.valuation,
            )
        )
    oracle.set_asset_configs(config.oracle.admin, assets, price_configs)

    for m in config.markets:
        token = SimulatedMarket(
            address=m.address,
            underlying=m.underlying,
            risk_engine=engine,
            exchange_rate_mantissa=m.exchange_rate_mantissa,
            reserve_factor_mantissa=m.reserve_factor_mantissa,
        )
        err = engine.support_market(config.engine.admin, token)
        if err != Error.NO_ERROR:
            raise ValueError(f"Could not list market {m.address}: {err.name}")
        deployment.markets[m.address] = token

    return deployment


def apply_risk_parameters(deployment: Deployment, config: AppConfig) -> list[str]:
    """Set factors, classes, caps, guardians and seed account positions.

    Returns the addresses of markets whose collateral factor was refused.
    """
    engine = deployment.engine
    admin = config.engine.admin
    refused: list[str] = []

    for m in config.markets:
        err = engine.set_collateral_factor(admin, m.address, m.collateral_factor_mantissa)
        if err != Error.NO_ERROR:
            logger.warning(
                "Collateral factor for %s not applied: %s", m.address, err.name
            )
            refused.append(m.address)
        engine.set_classification(admin, m.address, m.classification)

    capped = [m for m in config.markets if m.borrow_cap]
    if capped:
        engine.set_market_borrow_caps(
            admin, [m.address for m in capped], [m.borrow_cap for m in capped]
        )

    if config.engine.pause_guardian:
        engine.set_pause_guardian(admin, config.engine.pause_guardian)
    if config.engine.borrow_cap_guardian:
        engine.set_borrow_cap_guardian(admin, config.engine.borrow_cap_guardian)
    engine.set_segregation_mode(admin, config.engine.segregation_mode)

    for account in config.accounts:
        for market, position in account.positions.items():
            deployment.markets[market].set_position(
                account.address, tokens=position.tokens, borrows=position.borrows
            )
        engine.enter_markets(account.address, list(account.positions))

    return refused
