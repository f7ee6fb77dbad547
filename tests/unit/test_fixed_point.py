"""Unit tests for fixed-point helpers."""
from __future__ import annotations

import pytest

from lending_risk.fixed_point import (
    EXP_SCALE,
    Exp,
    InternalPrice,
    div_exp,
    mul_exp,
    mul_exp3,
    mul_scalar_truncate,
    mul_scalar_truncate_add,
    rescale,
    rescale_expo,
    to_external_price,
)


class TestExp:
    def test_mul_exp(self) -> None:
        assert mul_exp(Exp(EXP_SCALE // 2), Exp(3 * EXP_SCALE)) == Exp(3 * EXP_SCALE // 2)

    def test_mul_exp3(self) -> None:
        half = Exp(EXP_SCALE // 2)
        assert mul_exp3(half, half, Exp(4 * EXP_SCALE)) == Exp(EXP_SCALE)

    def test_div_exp(self) -> None:
        assert div_exp(Exp(EXP_SCALE), Exp(4 * EXP_SCALE)) == Exp(EXP_SCALE // 4)

    def test_div_by_zero_raises(self) -> None:
        with pytest.raises(ZeroDivisionError):
            div_exp(Exp(EXP_SCALE), Exp(0))

    def test_mul_scalar_truncates(self) -> None:
        # 0.333... * 10 = 3.33 → 3
        third = Exp(EXP_SCALE // 3)
        assert mul_scalar_truncate(third, 10) == 3

    def test_mul_scalar_truncate_add(self) -> None:
        assert mul_scalar_truncate_add(Exp(EXP_SCALE // 2), 10, 7) == 12

    def test_ordering(self) -> None:
        assert Exp(1) < Exp(2)


class TestRescale:
    def test_widen(self) -> None:
        assert rescale(250, 0, 6) == 250_000_000

    def test_narrow_truncates(self) -> None:
        assert rescale(250_99999999, 8, 6) == 250_999_999

    def test_same_scale(self) -> None:
        assert rescale(42, 6, 6) == 42

    def test_expo_negative(self) -> None:
        # 251.00000000 at expo -8 → 6 decimals
        assert rescale_expo(25_100_000_000, -8, 6) == 251_000_000

    def test_expo_small_exponent_widens(self) -> None:
        assert rescale_expo(251, 0, 6) == 251_000_000


class TestExternalPrice:
    def test_scenario_base_unit_1e8(self) -> None:
        price = to_external_price(InternalPrice(251 * 10**6), 10**8)
        assert price == 251 * 10**6 * 10**30 // 10**8

    def test_stablecoin_six_decimals(self) -> None:
        # $1 for a 6-decimal asset → 1e30
        assert to_external_price(InternalPrice(10**6), 10**6) == 10**30

    def test_zero_base_unit_raises(self) -> None:
        with pytest.raises(ZeroDivisionError):
            to_external_price(InternalPrice(1), 0)
