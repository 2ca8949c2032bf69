"""Calendar period helpers for summaries and date grouping.

The repository never reads the clock: callers compute the cutoffs here
from their own notion of "now" and pass them in.  The week start is a
policy choice (``WEEK_START`` setting, Sunday by default) and is always
passed explicitly.
"""

from __future__ import annotations

import datetime as dt
from typing import NamedTuple

from receiptscanner.models.enums import GroupingBucket, WeekStart

# datetime.weekday(): Monday == 0 ... Sunday == 6
_FIRST_WEEKDAY = {WeekStart.MONDAY: 0, WeekStart.SUNDAY: 6}


class PeriodBoundaries(NamedTuple):
    start_of_year: dt.datetime
    start_of_month: dt.datetime
    start_of_week: dt.datetime


def start_of_day(value: dt.datetime) -> dt.datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(value: dt.datetime, week_start: WeekStart | str = WeekStart.SUNDAY) -> dt.datetime:
    """Midnight of the first day of the calendar week containing ``value``."""
    first = _FIRST_WEEKDAY[WeekStart(week_start)]
    days_back = (value.weekday() - first) % 7
    return start_of_day(value) - dt.timedelta(days=days_back)


def truncate(value: dt.datetime, bucket: GroupingBucket | str, week_start: WeekStart | str = WeekStart.SUNDAY) -> dt.datetime:
    """Truncate ``value`` to the start of its week, month or year."""
    bucket = GroupingBucket(bucket)
    if bucket is GroupingBucket.WEEK:
        return start_of_week(value, week_start)
    if bucket is GroupingBucket.MONTH:
        return start_of_day(value).replace(day=1)
    return start_of_day(value).replace(month=1, day=1)


def period_boundaries(now: dt.datetime, week_start: WeekStart | str = WeekStart.SUNDAY) -> PeriodBoundaries:
    """Cutoffs for the "this year / this month / this week" summary windows."""
    return PeriodBoundaries(
        start_of_year=truncate(now, GroupingBucket.YEAR),
        start_of_month=truncate(now, GroupingBucket.MONTH),
        start_of_week=start_of_week(now, week_start),
    )
