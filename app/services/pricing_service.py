"""
Booking price calculation.

Everything here is a pure function of its arguments: the caller recomputes
the breakdown whenever the dates or the guest count of a booking change.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from config import TAX_RATE_PERCENT
from errors import InvalidDateRange
from utils.clock import to_utc_naive
from utils.money import ZERO, Number, clamp_non_negative, percent_of, to_money

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class PriceBreakdown:
    base_amount: Decimal
    taxes: Decimal
    fees: Decimal
    discounts: Decimal
    total_amount: Decimal


def count_nights(check_in: datetime, check_out: datetime) -> int:
    """Partial days count as a full night"""
    seconds = (to_utc_naive(check_out) - to_utc_naive(check_in)).total_seconds()
    nights = math.ceil(seconds / SECONDS_PER_DAY)
    if nights < 1:
        raise InvalidDateRange(
            "Check-out date must be after check-in date.",
            {"check_in_date": str(check_in), "check_out_date": str(check_out)},
        )
    return nights


def price(
    base_rate: Number,
    nights: int,
    guest_count: int,
    tax_rate_percent: Number = TAX_RATE_PERCENT,
    fees: Number = ZERO,
    discounts: Number = ZERO,
) -> PriceBreakdown:
    if nights < 1:
        raise InvalidDateRange("A booking needs at least one night.", {"nights": nights})
    if guest_count < 1:
        raise ValueError("guest_count must be at least 1")
    if to_money(base_rate) < ZERO:
        raise ValueError("base_rate must not be negative")

    base_amount = to_money(to_money(base_rate) * nights * guest_count)
    taxes = percent_of(base_amount, tax_rate_percent)
    fees = to_money(fees)
    discounts = to_money(discounts)
    total = clamp_non_negative(base_amount + taxes + fees - discounts)

    return PriceBreakdown(
        base_amount=base_amount,
        taxes=taxes,
        fees=fees,
        discounts=discounts,
        total_amount=total,
    )
