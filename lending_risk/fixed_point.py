"""Fixed-point arithmetic. One type per decimal scale, integer only.

Scales in use:
    Exp             1e18  collateral/close factors, exchange rates, incentives
    InternalPrice   1e6   oracle-internal normalized USD price
    external price  1e30 / base_unit  price handed to the risk engine
"""
from __future__ import annotations

from dataclasses import dataclass

EXP_SCALE = 10**18

INTERNAL_PRICE_DECIMALS = 6
EXTERNAL_PRICE_SCALE = 10**30


@dataclass(frozen=True, order=True)
class Exp:
    """Fraction encoded as an integer mantissa scaled by 1e18."""

    mantissa: int

    def is_zero(self) -> bool:
        return self.mantissa == 0


@dataclass(frozen=True, order=True)
class InternalPrice:
    """USD price with ``INTERNAL_PRICE_DECIMALS`` decimals."""

    mantissa: int


def mul_exp(a: Exp, b: Exp) -> Exp:
    """a * b, truncated back to 1e18."""
    return Exp(a.mantissa * b.mantissa // EXP_SCALE)


def mul_exp3(a: Exp, b: Exp, c: Exp) -> Exp:
    return mul_exp(mul_exp(a, b), c)


def div_exp(a: Exp, b: Exp) -> Exp:
    """a / b at 1e18. Raises ZeroDivisionError on a zero divisor."""
    return Exp(a.mantissa * EXP_SCALE // b.mantissa)


def mul_scalar_truncate(a: Exp, scalar: int) -> int:
    """Truncate(a * scalar): the integer part of a fraction times a count."""
    return a.mantissa * scalar // EXP_SCALE


def mul_scalar_truncate_add(a: Exp, scalar: int, addend: int) -> int:
    return mul_scalar_truncate(a, scalar) + addend


def rescale(value: int, from_decimals: int, to_decimals: int) -> int:
    """Move an integer between decimal scales, truncating when narrowing."""
    if from_decimals == to_decimals:
        return value
    if from_decimals > to_decimals:
        return value // 10 ** (from_decimals - to_decimals)
    return value * 10 ** (to_decimals - from_decimals)


def rescale_expo(value: int, expo: int, to_decimals: int) -> int:
    """Rescale a ``value * 10**expo`` quantity to ``to_decimals`` decimals."""
    return rescale(value, -expo, to_decimals)


def to_external_price(price: InternalPrice, base_unit: int) -> int:
    """Convert an internal price to the engine's convention.

    Multiplies first, then divides by the asset's base unit, so a 1e8 base
    unit asset priced at 251.000000 becomes 251e6 * 1e30 // 1e8.
    """
    if base_unit == 0:
        raise ZeroDivisionError("base unit must be nonzero")
    return price.mantissa * EXTERNAL_PRICE_SCALE // base_unit
