"""Business day helpers.

Only Saturday and Sunday are treated as non-business days; statutory
holidays are not considered.
"""

from datetime import date, timedelta

# date.weekday(): Monday == 0 ... Sunday == 6
_WEEKEND = (5, 6)


def is_weekend(day: date) -> bool:
    return day.weekday() in _WEEKEND


def is_business_day(day: date) -> bool:
    return not is_weekend(day)


def previous_business_day(day: date) -> date:
    """Most recent business day on or before `day`"""
    while not is_business_day(day):
        day -= timedelta(days=1)
    return day


def next_business_day(day: date) -> date:
    """Earliest business day on or after `day`"""
    while not is_business_day(day):
        day += timedelta(days=1)
    return day


def add_business_days(day: date, count: int) -> date:
    """
    Move `count` business days away from `day` (backwards when negative).
    A count of zero returns `day` unchanged even if it falls on a weekend.
    """
    step = timedelta(days=1 if count >= 0 else -1)
    remaining = abs(count)
    while remaining:
        day += step
        if is_business_day(day):
            remaining -= 1
    return day
