"""Pure liquidity computations — pooled and segregated regimes.

All values are USD amounts scaled by 1e18: an external price (1e30 / base
unit) times a native token amount, truncated by 1e18.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from ..errors import Error, OracleError
from ..fixed_point import Exp, div_exp, mul_exp, mul_exp3, mul_scalar_truncate, mul_scalar_truncate_add
from ..interfaces.price_oracle import PriceOracle
from ..models import Classification, Market, PooledLiquidity, SegregatedLiquidity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Hypothetical:
    """Pending change to one market, modelled as extra debt."""

    market: str | None = None
    redeem_tokens: int = 0
    borrow_amount: int = 0


NO_CHANGE = Hypothetical()


@dataclass(frozen=True)
class AssetValuation:
    """Per-market figures for one account."""

    collateral: int
    borrow: int
    effects: int


def safe_price(oracle: PriceOracle, asset: str) -> int:
    """Oracle price, or 0 when the oracle cannot produce one."""
    try:
        return oracle.get_underlying_price(asset)
    except OracleError as e:
        logger.warning("Price unavailable for %s: %s", asset, e)
        return 0


def value_asset(
    market: Market,
    account: str,
    oracle: PriceOracle,
    change: Hypothetical,
) -> tuple[Error, AssetValuation | None]:
    """Value one market position, including any hypothetical change to it."""
    snapshot = market.token.get_account_snapshot(account)
    if snapshot.error != Error.NO_ERROR:
        return Error.SNAPSHOT_ERROR, None

    price = safe_price(oracle, market.address)
    if price == 0:
        return Error.PRICE_ERROR, None

    collateral_factor = Exp(market.collateral_factor_mantissa)
    exchange_rate = Exp(snapshot.exchange_rate_mantissa)
    oracle_price = Exp(price)
    tokens_to_denom = mul_exp3(collateral_factor, exchange_rate, oracle_price)

    collateral = mul_scalar_truncate(tokens_to_denom, snapshot.token_balance)
    borrow = mul_scalar_truncate(oracle_price, snapshot.borrow_balance)

    effects = 0
    if change.market == market.address:
        effects = mul_scalar_truncate_add(tokens_to_denom, change.redeem_tokens, effects)
        effects = mul_scalar_truncate_add(oracle_price, change.borrow_amount, effects)

    return Error.NO_ERROR, AssetValuation(collateral=collateral, borrow=borrow, effects=effects)


def _split(collateral: int, debt: int) -> tuple[int, int]:
    if collateral > debt:
        return collateral - debt, 0
    return 0, debt - collateral


def pooled_liquidity(
    account: str,
    assets: Iterable[str],
    markets: Mapping[str, Market],
    oracle: PriceOracle,
    change: Hypothetical = NO_CHANGE,
) -> tuple[Error, PooledLiquidity]:
    """All entered markets share one collateral/borrow ledger."""
    sum_collateral = 0
    sum_borrow_plus_effects = 0

    for asset in assets:
        err, valuation = value_asset(markets[asset], account, oracle, change)
        if err != Error.NO_ERROR:
            return err, PooledLiquidity()
        sum_collateral += valuation.collateral
        sum_borrow_plus_effects += valuation.borrow + valuation.effects

    liquidity, shortfall = _split(sum_collateral, sum_borrow_plus_effects)
    return Error.NO_ERROR, PooledLiquidity(liquidity=liquidity, shortfall=shortfall)


def segregated_liquidity(
    account: str,
    assets: Iterable[str],
    markets: Mapping[str, Market],
    oracle: PriceOracle,
    change: Hypothetical = NO_CHANGE,
) -> tuple[Error, SegregatedLiquidity]:
    """TypeA collateral backs TypeB debt and vice versa.

    Unclassified markets are skipped entirely, without a snapshot or price
    read. A hypothetical change lands in the changed market's own borrow
    accumulator, which is weighed against the opposite bucket's collateral.
    """
    collateral = {Classification.TYPE_A: 0, Classification.TYPE_B: 0}
    borrow_plus_effects = {Classification.TYPE_A: 0, Classification.TYPE_B: 0}

    for asset in assets:
        market = markets[asset]
        bucket = market.classification
        if bucket is Classification.UNCLASSIFIED:
            continue

        err, valuation = value_asset(market, account, oracle, change)
        if err != Error.NO_ERROR:
            return err, SegregatedLiquidity()
        collateral[bucket] += valuation.collateral
        borrow_plus_effects[bucket] += valuation.borrow + valuation.effects

    liquidity_a, shortfall_a = _split(
        collateral[Classification.TYPE_A], borrow_plus_effects[Classification.TYPE_B]
    )
    liquidity_b, shortfall_b = _split(
        collateral[Classification.TYPE_B], borrow_plus_effects[Classification.TYPE_A]
    )
    return Error.NO_ERROR, SegregatedLiquidity(
        liquidity_a=liquidity_a,
        shortfall_a=shortfall_a,
        liquidity_b=liquidity_b,
        shortfall_b=shortfall_b,
    )


def seize_tokens(
    price_borrowed: int,
    price_collateral: int,
    exchange_rate_mantissa: int,
    liquidation_incentive_mantissa: int,
    repay_amount: int,
) -> tuple[Error, int]:
    """Collateral tokens owed to a liquidator for repaying ``repay_amount``.

    seize = repay * (incentive * price_borrowed) / (price_collateral * exchange_rate)
    """
    if price_borrowed == 0 or price_collateral == 0:
        return Error.PRICE_ERROR, 0

    numerator = mul_exp(Exp(liquidation_incentive_mantissa), Exp(price_borrowed))
    denominator = mul_exp(Exp(price_collateral), Exp(exchange_rate_mantissa))
    if denominator.is_zero():
        return Error.PRICE_ERROR, 0
    ratio = div_exp(numerator, denominator)
    return Error.NO_ERROR, mul_scalar_truncate(ratio, repay_amount)
