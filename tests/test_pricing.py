from datetime import datetime
from decimal import Decimal

import pytest

from errors import InvalidDateRange
from services.pricing_service import count_nights, price
from utils.money import percent_of, to_minor_units, from_minor_units, to_money


def test_price_for_two_guests_one_night():
    breakdown = price(Decimal("50.00"), nights=1, guest_count=2, tax_rate_percent=Decimal("15"))

    assert breakdown.base_amount == Decimal("100.00")
    assert breakdown.taxes == Decimal("15.00")
    assert breakdown.total_amount == Decimal("115.00")


def test_price_applies_fees_and_discounts_after_tax():
    breakdown = price(
        Decimal("40.00"),
        nights=3,
        guest_count=1,
        tax_rate_percent=Decimal("10"),
        fees=Decimal("5.00"),
        discounts=Decimal("20.00"),
    )

    assert breakdown.base_amount == Decimal("120.00")
    assert breakdown.taxes == Decimal("12.00")
    assert breakdown.total_amount == Decimal("117.00")


def test_price_never_goes_negative():
    breakdown = price(Decimal("10.00"), 1, 1, tax_rate_percent=0, discounts=Decimal("50.00"))
    assert breakdown.total_amount == Decimal("0.00")


def test_tax_rounds_half_up_to_the_cent():
    breakdown = price(Decimal("33.33"), 1, 1, tax_rate_percent=Decimal("15"))
    # 4.9995 -> 5.00
    assert breakdown.taxes == Decimal("5.00")
    assert breakdown.total_amount == Decimal("38.33")


def test_price_rejects_zero_nights():
    with pytest.raises(InvalidDateRange):
        price(Decimal("50.00"), 0, 1)


def test_count_nights_whole_days():
    assert count_nights(datetime(2024, 12, 1), datetime(2024, 12, 4)) == 3


def test_count_nights_rounds_partial_day_up():
    assert count_nights(datetime(2024, 12, 1, 14, 0), datetime(2024, 12, 2, 11, 0)) == 1
    assert count_nights(datetime(2024, 12, 1), datetime(2024, 12, 2, 1, 0)) == 2


@pytest.mark.parametrize(
    "check_in, check_out",
    [
        (datetime(2024, 12, 2), datetime(2024, 12, 2)),
        (datetime(2024, 12, 3), datetime(2024, 12, 2)),
    ],
)
def test_count_nights_rejects_empty_or_reversed_range(check_in, check_out):
    with pytest.raises(InvalidDateRange):
        count_nights(check_in, check_out)


def test_money_helpers():
    assert to_money(0.1) == Decimal("0.10")
    assert to_money("2.675") == Decimal("2.68")
    assert percent_of(Decimal("115.00"), Decimal("2.9")) == Decimal("3.34")
    assert to_minor_units(Decimal("115.00")) == 11500
    assert from_minor_units(11500) == Decimal("115.00")
