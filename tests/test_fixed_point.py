"""Tests for integer fixed-point helpers."""

from decimal import Decimal

import pytest

from core.errors import ArithmeticOverflow
from core.fixed_point import (
    BASE_UNIT,
    MAX_AMOUNT,
    base_unit,
    checked_add,
    checked_mul,
    checked_sub,
    from_base_units,
    mul_div,
    saturating_sub,
    to_base_units,
)


class TestCheckedArithmetic:
    """Tests for the range-checked helpers."""

    def test_add_within_range(self) -> None:
        assert checked_add(2, 3) == 5

    def test_add_overflow_raises(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_add(MAX_AMOUNT, 1)

    def test_sub_underflow_raises(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_sub(1, 2)

    def test_mul_overflow_raises(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_mul(2**200, 2**100)

    def test_overflow_is_arithmetic_error(self) -> None:
        with pytest.raises(ArithmeticError):
            checked_add(MAX_AMOUNT, MAX_AMOUNT)

    def test_mul_div_floors(self) -> None:
        assert mul_div(10, 1, 3) == 3
        assert mul_div(2 * BASE_UNIT, 5 * BASE_UNIT, BASE_UNIT) == 10 * BASE_UNIT

    def test_mul_div_zero_denominator_raises(self) -> None:
        with pytest.raises(ArithmeticOverflow, match="denominator"):
            mul_div(1, 1, 0)

    def test_saturating_sub_stops_at_zero(self) -> None:
        assert saturating_sub(5, 3) == 2
        assert saturating_sub(3, 5) == 0


class TestConversions:
    """Tests for Decimal <-> base unit conversion."""

    def test_base_unit(self) -> None:
        assert base_unit(6) == 1_000_000
        assert BASE_UNIT == 10**18

    def test_negative_decimals_raise(self) -> None:
        with pytest.raises(ValueError):
            base_unit(-1)

    def test_to_base_units_truncates_dust(self) -> None:
        assert to_base_units(Decimal("1.5"), 2) == 150
        assert to_base_units(Decimal("0.019"), 2) == 1

    def test_to_base_units_accepts_str_and_int(self) -> None:
        assert to_base_units("2", 3) == 2000
        assert to_base_units(7, 0) == 7

    def test_to_base_units_rejects_negative(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            to_base_units(Decimal("-1"))

    def test_to_base_units_rejects_nan(self) -> None:
        with pytest.raises(ValueError):
            to_base_units(Decimal("NaN"))

    def test_from_base_units(self) -> None:
        assert from_base_units(150, 2) == Decimal("1.50")
        assert from_base_units(to_base_units(Decimal("12.345"))) == Decimal("12.345")
