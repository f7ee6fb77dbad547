"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from lending_risk.engine import RiskEngine
from lending_risk.errors import Error
from lending_risk.fixed_point import EXP_SCALE
from lending_risk.markets import SimulatedMarket
from lending_risk.models import AssetPriceConfig, Classification, Valuation
from lending_risk.oracles import DualFeedPriceOracle, HermesPriceBoard, ManualAggregator

NOW = 1_700_000_000
ADMIN = "admin"
GUARDIAN = "guardian"

# ---------------------------------------------------------------------------
# Engine harness
# ---------------------------------------------------------------------------


@dataclass
class Harness:
    """Engine, oracle and markets priced by hand-driven aggregators."""

    engine: RiskEngine
    oracle: DualFeedPriceOracle
    board: HermesPriceBoard
    markets: dict[str, SimulatedMarket] = field(default_factory=dict)
    aggregators: dict[str, ManualAggregator] = field(default_factory=dict)

    def list_market(
        self,
        address: str,
        usd_price: int,
        decimals: int,
        collateral_factor: int,
        classification: Classification = Classification.UNCLASSIFIED,
    ) -> SimulatedMarket:
        """List a market priced at a whole-dollar ``usd_price`` per unit."""
        aggregator = ManualAggregator(decimals=8, answer=usd_price * 10**8, updated_at=NOW)
        self.oracle.set_asset_configs(
            ADMIN,
            [address],
            [
                AssetPriceConfig(
                    underlying=address.removeprefix("b"),
                    base_unit=10**decimals,
                    deterministic_feed=aggregator,
                    max_price_age=3600,
                    valuation=Valuation.COLLATERAL,
                )
            ],
        )
        token = SimulatedMarket(address, address.removeprefix("b"), self.engine)
        assert self.engine.support_market(ADMIN, token) == Error.NO_ERROR
        assert self.engine.set_collateral_factor(ADMIN, address, collateral_factor) == Error.NO_ERROR
        assert self.engine.set_classification(ADMIN, address, classification) == Error.NO_ERROR
        self.markets[address] = token
        self.aggregators[address] = aggregator
        return token

    def set_price(self, address: str, usd_price: int) -> None:
        self.aggregators[address].update(usd_price * 10**8, NOW)


@pytest.fixture()
def board() -> HermesPriceBoard:
    return HermesPriceBoard("https://hermes.example.com")


@pytest.fixture()
def oracle(board: HermesPriceBoard) -> DualFeedPriceOracle:
    return DualFeedPriceOracle(ADMIN, board, clock=lambda: NOW)


@pytest.fixture()
def engine(oracle: DualFeedPriceOracle) -> RiskEngine:
    return RiskEngine(
        admin=ADMIN,
        oracle=oracle,
        close_factor_mantissa=EXP_SCALE // 2,
        liquidation_incentive_mantissa=108 * EXP_SCALE // 100,
    )


@pytest.fixture()
def harness(
    engine: RiskEngine, oracle: DualFeedPriceOracle, board: HermesPriceBoard
) -> Harness:
    """Three markets: USDC (TypeB), TSLA (TypeA), ETH (unclassified)."""
    h = Harness(engine=engine, oracle=oracle, board=board)
    h.list_market("bUSDC", 1, 6, 8 * EXP_SCALE // 10, Classification.TYPE_B)
    h.list_market("bTSLA", 250, 18, EXP_SCALE // 2, Classification.TYPE_A)
    h.list_market("bETH", 2000, 18, 75 * EXP_SCALE // 100, Classification.UNCLASSIFIED)
    return h


def usd(amount: int) -> int:
    """Whole dollars as a 1e18-scaled engine value."""
    return amount * EXP_SCALE


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    engine:
      admin: admin
      pause_guardian: guardian
      close_factor: 0.5
      liquidation_incentive: 1.08
      segregation_mode: false
    oracle:
      hermes_url: "https://hermes.example.com"
      hermes_timeout: 10
    markets:
      - address: bUSDC
        underlying: USDC
        collateral_factor: 0.8
        classification: type_b
        price:
          base_unit: 1000000
          feed_decimals: 8
          answer: 100000000
          updated_at: 1700000000
          pyth_feed_id: "0xAAA"
          max_price_age: 3600
      - address: bTSLA
        underlying: TSLA
        collateral_factor: 0.5
        classification: type_a
        borrow_cap: 1000000000000000000000
        price:
          base_unit: 1000000000000000000
          feed_decimals: 8
          answer: 25000000000
          updated_at: 1700000000
          pyth_feed_id: "bbb"
          max_price_age: 3600
          valuation: borrowed
    accounts:
      - label: alice
        address: "0xALICE"
        positions:
          bUSDC: {tokens: 1000000000, borrows: 0}
          bTSLA: {tokens: 0, borrows: 2000000000000000000}
      - label: bob
        address: "0xBOB"
        positions:
          bUSDC: {tokens: 100000000, borrows: 0}
          bTSLA: {tokens: 0, borrows: 1000000000000000000}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
