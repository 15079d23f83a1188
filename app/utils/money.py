"""
Fixed-point money helpers.

All amounts are ``Decimal`` values quantized to the smallest currency unit.
Percentage math rounds half-up, the same way everywhere a fee is derived.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, float):
        # go through str so 0.1 stays 0.1
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Number, percent: Number) -> Decimal:
    return to_money(Decimal(to_money(amount)) * Decimal(str(percent)) / HUNDRED)


def clamp_non_negative(amount: Number) -> Decimal:
    return max(ZERO, to_money(amount))


def to_minor_units(amount: Number) -> int:
    """Gateway APIs take integer cents"""
    return int(to_money(amount) * 100)


def from_minor_units(amount: int) -> Decimal:
    return to_money(Decimal(amount) / HUNDRED)
