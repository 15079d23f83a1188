from decimal import Decimal

from utils.money import Number, percent_of

# (lower bound in hours, fee percentage), checked from the furthest band down.
# A value sitting exactly on a bound belongs to the band that starts there.
FEE_TIERS = (
    (Decimal("168"), Decimal("10")),
    (Decimal("48"), Decimal("25")),
    (Decimal("24"), Decimal("50")),
)
LAST_MINUTE_FEE_PERCENT = Decimal("100")


def fee_percentage(hours_until_check_in: Number) -> Decimal:
    hours = Decimal(str(hours_until_check_in))
    for lower_bound, percent in FEE_TIERS:
        if hours >= lower_bound:
            return percent
    return LAST_MINUTE_FEE_PERCENT


def cancellation_fee(total_amount: Number, hours_until_check_in: Number) -> Decimal:
    return percent_of(total_amount, fee_percentage(hours_until_check_in))
