"""Recurrence Expander - turns a recurring rule into due dates"""

from datetime import date, timedelta
from typing import Any, List, Mapping, Optional, Union

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError

from app.core.exceptions import InvalidRuleError
from app.models.enums import Frequency
from app.schemas.billing import RecurringRule

DEFAULT_HORIZON_MONTHS = 18
MAX_OCCURRENCES = 200


def _offset(frequency: Frequency, steps: int, by_month_day: Optional[int]) -> Union[timedelta, relativedelta]:
    if frequency == Frequency.WEEKLY:
        return timedelta(weeks=steps)
    if frequency == Frequency.MONTHLY:
        if by_month_day and steps:
            # relativedelta clamps an absolute day to the month's length
            return relativedelta(months=steps, day=by_month_day)
        return relativedelta(months=steps)
    return relativedelta(years=steps)


def expand_dates(
    start: date,
    frequency: Union[Frequency, str],
    interval: int = 1,
    end_date: Optional[date] = None,
    by_month_day: Optional[int] = None,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
    max_count: int = MAX_OCCURRENCES,
) -> List[date]:
    """
    Expand a recurrence into an ascending list of due dates.

    The first date is `start`. Date k is `start` advanced by k*interval
    units, so monthly schedules stay anchored on the start day: a rule
    starting Jan 31 yields Jan 31, Feb 28 (29 in leap years), Mar 31, ...
    Expansion stops when the next date would pass `end_date`, or
    `start + horizon_months` when no end date is given, and never yields
    more than MAX_OCCURRENCES dates.

    Raises:
        InvalidRuleError: unsupported frequency or non-positive interval
    """
    try:
        unit = Frequency(frequency)
    except ValueError:
        raise InvalidRuleError(
            f"Unsupported recurring frequency: {frequency!r}",
            details={"frequency": frequency},
        )
    if interval is None or interval < 1:
        raise InvalidRuleError(
            f"Recurring interval must be a positive integer, got {interval!r}",
            details={"interval": interval},
        )

    limit = end_date if end_date is not None else start + relativedelta(months=horizon_months)
    cap = max(0, min(max_count, MAX_OCCURRENCES))

    dates: List[date] = []
    step = 0
    while len(dates) < cap:
        candidate = start + _offset(unit, step * interval, by_month_day)
        if candidate > limit:
            break
        dates.append(candidate)
        step += 1
    return dates


def parse_rule(raw: Union[RecurringRule, Mapping[str, Any]]) -> RecurringRule:
    """
    Validate a stored rule. Rules are kept as JSON, so rows written before a
    validation change can hold values the API would now reject.
    """
    if isinstance(raw, RecurringRule):
        return raw
    try:
        return RecurringRule.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        if any(err.get("loc", ())[:1] == ("frequency",) for err in errors):
            value = raw.get("frequency") if isinstance(raw, Mapping) else None
            raise InvalidRuleError(
                f"Unsupported recurring frequency: {value!r}",
                details={"frequency": value},
            ) from exc
        raise InvalidRuleError(
            f"Invalid recurring rule: {errors[0].get('msg', 'validation failed')}",
            details=[{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors],
        ) from exc


def expand_rule(
    rule: RecurringRule,
    fallback_start: Optional[date] = None,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
    max_count: int = MAX_OCCURRENCES,
) -> List[date]:
    """Expand a validated rule; the bill's due date stands in for a missing start date."""
    start = rule.start_date or fallback_start
    if start is None:
        raise InvalidRuleError("Recurring rule has no start date and the bill has no due date")
    return expand_dates(
        start,
        rule.frequency,
        interval=rule.interval,
        end_date=rule.end_date,
        by_month_day=rule.by_month_day,
        horizon_months=rule.horizon_months or horizon_months,
        max_count=max_count,
    )
