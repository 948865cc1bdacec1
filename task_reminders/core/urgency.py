"""
Urgency buckets for tasks.

0 - due today or already overdue
1 - due tomorrow or the day after
2 - due in 3-4 days
3 - due in 5 or more days

Only the calendar day in the reference timezone matters; time of day is ignored.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Union

import pytz

DEFAULT_TIMEZONE = "UTC"

TzLike = Union[str, pytz.BaseTzInfo, None]


def _resolve_tz(tz: TzLike) -> pytz.BaseTzInfo:
    if tz is None:
        return pytz.timezone(DEFAULT_TIMEZONE)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def local_day(moment: datetime, tz: TzLike = None) -> date:
    """Calendar day of ``moment`` in ``tz``. Naive datetimes are taken as UTC."""
    zone = _resolve_tz(tz)
    if moment.tzinfo is None:
        moment = pytz.UTC.localize(moment)
    return moment.astimezone(zone).date()


def classify(due: datetime, now: datetime, tz: TzLike = None) -> int:
    today = local_day(now, tz)
    due_day = local_day(due, tz)

    tomorrow = today + timedelta(days=1)
    day2 = today + timedelta(days=2)
    day4 = today + timedelta(days=4)

    if due_day < tomorrow:
        return 0
    if tomorrow <= due_day <= day2:
        return 1
    if day2 < due_day <= day4:
        return 2
    return 3
