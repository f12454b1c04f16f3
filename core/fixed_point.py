"""Integer fixed-point helpers.

Amounts are ints in the smallest unit; one whole unit is ``10 ** decimals``.
All checked helpers keep results inside ``[0, MAX_AMOUNT]``.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, localcontext

from core.errors import ArithmeticOverflow

DEFAULT_DECIMALS = 18
MAX_AMOUNT = 2**256 - 1

# Enough digits for any MAX_AMOUNT value at any practical precision.
_CONVERSION_PRECISION = 160


def base_unit(decimals: int = DEFAULT_DECIMALS) -> int:
    """Return the size of one whole unit for the given precision."""
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    return 10**decimals


BASE_UNIT = base_unit()


def _check_range(value: int, op: str) -> int:
    if value < 0 or value > MAX_AMOUNT:
        raise ArithmeticOverflow(f"{op} out of range: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    return _check_range(_check_range(a, "add operand") + _check_range(b, "add operand"), "add")


def checked_sub(a: int, b: int) -> int:
    return _check_range(_check_range(a, "sub operand") - _check_range(b, "sub operand"), "sub")


def checked_mul(a: int, b: int) -> int:
    return _check_range(_check_range(a, "mul operand") * _check_range(b, "mul operand"), "mul")


def mul_div(a: int, b: int, denominator: int) -> int:
    """Compute ``a * b // denominator`` with a checked product (floor rounding)."""
    if denominator <= 0:
        raise ArithmeticOverflow(f"division by non-positive denominator: {denominator}")
    return checked_mul(a, b) // denominator


def saturating_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


def to_base_units(amount: Decimal | int | str, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a human amount (e.g. Decimal("1.5")) to base units, truncating dust."""
    value = Decimal(amount)
    if not value.is_finite() or value < 0:
        raise ValueError(f"amount must be a finite non-negative number: {amount}")
    with localcontext() as ctx:
        ctx.prec = _CONVERSION_PRECISION
        scaled = value.scaleb(decimals).quantize(Decimal("1"), rounding=ROUND_DOWN)
    return _check_range(int(scaled), "to_base_units")


def from_base_units(amount: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert base units back to a Decimal amount."""
    with localcontext() as ctx:
        ctx.prec = _CONVERSION_PRECISION
        return Decimal(amount).scaleb(-decimals)
