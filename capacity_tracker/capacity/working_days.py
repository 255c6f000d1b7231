"""Working days of a user in a week, net of approved time off.

The arithmetic lives in :func:`count_days_off`, which needs no database; the
async wrapper only fetches the approved requests that touch the week.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.app_settings.service import CapacityTunables
from capacity_tracker.common.constants import TimeOffStatus
from capacity_tracker.common.dates import count_weekdays, start_of_week, week_end
from capacity_tracker.time_off.models import TimeOffRequest


def count_days_off(ranges: Iterable[tuple[date, date]], week_start: date) -> int:
    """Mon–Fri days of ``week_start``'s week covered by the inclusive ``ranges``.

    Each range is clipped to the week before counting. Ranges are summed
    without merging: approved requests of one user never overlap.
    """
    window_start = week_start
    window_end = week_end(week_start)
    total = 0
    for first, last in ranges:
        total += count_weekdays(max(first, window_start), min(last, window_end))
    return total


def net_working_days(days_off: int, working_days_per_week: int = 5) -> int:
    return max(0, working_days_per_week - days_off)


async def approved_ranges(
    db: AsyncSession,
    user_id: uuid.UUID,
    first: date,
    last: date,
) -> list[tuple[date, date]]:
    """Approved time-off ranges of a user that touch [first, last]."""
    result = await db.execute(
        select(TimeOffRequest.start_date, TimeOffRequest.end_date).where(
            TimeOffRequest.user_id == user_id,
            TimeOffRequest.status == TimeOffStatus.approved,
            TimeOffRequest.start_date <= last,
            TimeOffRequest.end_date >= first,
        )
    )
    return [(row.start_date, row.end_date) for row in result.all()]


async def calculate_working_days(
    db: AsyncSession,
    user_id: uuid.UUID,
    week_start: date,
    tunables: Optional[CapacityTunables] = None,
) -> int:
    """Working days left to ``user_id`` in the week starting ``week_start``."""
    tunables = tunables or CapacityTunables()
    week_start = start_of_week(week_start)
    ranges = await approved_ranges(db, user_id, week_start, week_end(week_start))
    return net_working_days(count_days_off(ranges, week_start), tunables.working_days_per_week)


async def working_days_table(
    db: AsyncSession,
    user_ids: Iterable[uuid.UUID],
    weeks: Iterable[date],
    tunables: CapacityTunables,
) -> dict[tuple[uuid.UUID, date], int]:
    """Working days for every (user, week) pair, from one time-off query."""
    user_ids = list(dict.fromkeys(user_ids))
    weeks = sorted({start_of_week(w) for w in weeks})
    if not user_ids or not weeks:
        return {}

    result = await db.execute(
        select(
            TimeOffRequest.user_id,
            TimeOffRequest.start_date,
            TimeOffRequest.end_date,
        ).where(
            TimeOffRequest.user_id.in_(user_ids),
            TimeOffRequest.status == TimeOffStatus.approved,
            TimeOffRequest.start_date <= week_end(weeks[-1]),
            TimeOffRequest.end_date >= weeks[0],
        )
    )
    ranges_by_user: dict[uuid.UUID, list[tuple[date, date]]] = {}
    for row in result.all():
        ranges_by_user.setdefault(row.user_id, []).append((row.start_date, row.end_date))

    table: dict[tuple[uuid.UUID, date], int] = {}
    for user_id in user_ids:
        ranges = ranges_by_user.get(user_id, [])
        for week in weeks:
            table[(user_id, week)] = net_working_days(
                count_days_off(ranges, week), tunables.working_days_per_week,
            )
    return table


def max_hours(working_days: int, tunables: CapacityTunables) -> float:
    return working_days * tunables.hours_per_day * tunables.pace_factor
