"""Week arithmetic shared by capacity, time-off and export code."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator, Optional


def start_of_week(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def week_end(week_start: date) -> date:
    """Last calendar day (Sunday) of the week beginning on ``week_start``."""
    return week_start + timedelta(days=6)


def current_week_start(today: Optional[date] = None) -> date:
    return start_of_week(today or date.today())


def iter_weeks(first: date, last: date) -> Iterator[date]:
    """Yield every week start from ``first`` to ``last`` inclusive."""
    week = start_of_week(first)
    last = start_of_week(last)
    while week <= last:
        yield week
        week += timedelta(weeks=1)


def count_weekdays(first: date, last: date) -> int:
    """Number of Monday–Friday days in the inclusive range [first, last]."""
    if last < first:
        return 0
    total = 0
    day = first
    while day <= last:
        if day.weekday() < 5:
            total += 1
        day += timedelta(days=1)
    return total
