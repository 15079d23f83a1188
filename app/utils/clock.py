"""
Time helpers.

Services never read the wall clock: ``now`` is passed in by the caller.
Storage keeps naive UTC datetimes, so every incoming value is normalized
through ``to_utc_naive`` first.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

from errors import InvalidDateRange

REPORT_DEFAULT_DAYS = 30


def utc_now() -> datetime:
    """Wall clock for the request layer only"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def hours_between(start: datetime, end: datetime) -> float:
    return (to_utc_naive(end) - to_utc_naive(start)).total_seconds() / 3600


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(to_utc_naive(value).date(), time.min)


def report_period(
    now: datetime,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    days: int = REPORT_DEFAULT_DAYS,
) -> Tuple[datetime, datetime]:
    """
    Half-open window covering the inclusive calendar dates of a report.

    Without dates the window is the last ``days`` days up to ``now``.
    """
    end = to_utc_naive(end_date) + timedelta(days=1) if end_date is not None else now
    start = to_utc_naive(start_date) if start_date is not None else end - timedelta(days=days)
    if start >= end:
        raise InvalidDateRange(
            "Report start date must not be after its end date.",
            {"start_date": start.date().isoformat(), "end_date": (end - timedelta(days=1)).date().isoformat()},
        )
    return start, end
