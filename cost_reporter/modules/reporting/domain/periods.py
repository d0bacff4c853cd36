"""
Report window resolution.

Scheduled runs report on closed periods; on-demand month runs report the
current month to date.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from cost_reporter.schemas.costs import DateRange, ReportPeriod
from cost_reporter.shared.core.exceptions import InvalidPeriodError


def coerce_period(period: Union[ReportPeriod, str]) -> ReportPeriod:
    if isinstance(period, ReportPeriod):
        return period
    try:
        return ReportPeriod(str(period).strip().lower())
    except ValueError as exc:
        raise InvalidPeriodError(period) from exc


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _first_of_month(day: date) -> date:
    return day.replace(day=1)


def _first_of_previous_month(day: date) -> date:
    return (_first_of_month(day) - timedelta(days=1)).replace(day=1)


def resolve_date_range(
    period: Union[ReportPeriod, str],
    is_scheduled: bool,
    today: Optional[date] = None,
) -> DateRange:
    """
    Returns the half-open [start, end) window for a report period.

    day:   yesterday only
    week:  the seven full days ending yesterday (end excluded)
    month: previous full month when scheduled, month-to-date otherwise
    """
    resolved = coerce_period(period)
    today = today or utc_today()

    if resolved is ReportPeriod.DAY:
        return DateRange(start=today - timedelta(days=1), end=today)

    if resolved is ReportPeriod.WEEK:
        return DateRange(
            start=today - timedelta(days=8), end=today - timedelta(days=1)
        )

    if is_scheduled:
        return DateRange(
            start=_first_of_previous_month(today), end=_first_of_month(today)
        )
    return DateRange(start=_first_of_month(today), end=today)
