"""Tests for working-day arithmetic and the hours derivation.

Pure helpers are tested without a database; the async wrappers are
exercised against seeded time-off rows.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.app_settings.service import CapacityTunables
from capacity_tracker.capacity.working_days import (
    calculate_working_days,
    count_days_off,
    max_hours,
    net_working_days,
    working_days_table,
)
from capacity_tracker.common.constants import TimeOffStatus
from tests.conftest import WEEK, seed_time_off

# WEEK is Monday 2025-07-14
WED = date(2025, 7, 16)
THU = date(2025, 7, 17)
FRI = date(2025, 7, 18)


# ═════════════════════════════════════════════════════════════════════
# 1. Pure arithmetic
# ═════════════════════════════════════════════════════════════════════


class TestCountDaysOff:

    def test_no_ranges(self):
        assert count_days_off([], WEEK) == 0

    def test_two_mid_week_days(self):
        assert count_days_off([(WED, THU)], WEEK) == 2

    def test_range_clipped_to_week(self):
        """A two-week vacation only removes this week's weekdays."""
        assert count_days_off([(date(2025, 7, 9), date(2025, 7, 23))], WEEK) == 5

    def test_weekend_only_range_counts_nothing(self):
        assert count_days_off([(date(2025, 7, 19), date(2025, 7, 20))], WEEK) == 0

    def test_range_outside_week(self):
        assert count_days_off([(date(2025, 7, 21), date(2025, 7, 25))], WEEK) == 0

    def test_separate_ranges_are_summed(self):
        assert count_days_off([(WEEK, WEEK), (FRI, FRI)], WEEK) == 2


class TestHours:

    def test_net_working_days_never_negative(self):
        assert net_working_days(7) == 0
        assert net_working_days(2) == 3

    def test_max_hours_full_week(self):
        assert max_hours(5, CapacityTunables()) == pytest.approx(32.0)

    def test_max_hours_three_days(self):
        assert max_hours(3, CapacityTunables()) == pytest.approx(19.2)

    def test_custom_tunables(self):
        tunables = CapacityTunables(pace_factor=0.5, hours_per_day=6, working_days_per_week=4)
        assert tunables.hours_per_working_day == pytest.approx(3.0)
        assert max_hours(4, tunables) == pytest.approx(12.0)
        assert net_working_days(1, tunables.working_days_per_week) == 3


# ═════════════════════════════════════════════════════════════════════
# 2. Database-backed calculation
# ═════════════════════════════════════════════════════════════════════


class TestCalculateWorkingDays:

    async def test_full_week_without_time_off(self, db: AsyncSession, developer):
        assert await calculate_working_days(db, developer.id, WEEK) == 5

    async def test_approved_wed_thu_leaves_three_days(self, db: AsyncSession, developer):
        await seed_time_off(db, developer.id, WED, THU)

        days = await calculate_working_days(db, developer.id, WEEK)
        assert days == 3
        assert max_hours(days, CapacityTunables()) == pytest.approx(19.2)

    async def test_any_day_of_week_is_normalized(self, db: AsyncSession, developer):
        await seed_time_off(db, developer.id, WED, THU)
        assert await calculate_working_days(db, developer.id, FRI) == 3

    @pytest.mark.parametrize(
        "status", [TimeOffStatus.pending, TimeOffStatus.rejected, TimeOffStatus.cancelled],
    )
    async def test_only_approved_time_off_counts(self, db: AsyncSession, developer, status):
        await seed_time_off(db, developer.id, WEEK, FRI, status=status)
        assert await calculate_working_days(db, developer.id, WEEK) == 5

    async def test_more_time_off_never_adds_days(self, db: AsyncSession, developer):
        before = await calculate_working_days(db, developer.id, WEEK)
        await seed_time_off(db, developer.id, WED, WED)
        middle = await calculate_working_days(db, developer.id, WEEK)
        await seed_time_off(db, developer.id, FRI, FRI)
        after = await calculate_working_days(db, developer.id, WEEK)

        assert before >= middle >= after
        assert (before, middle, after) == (5, 4, 3)


class TestWorkingDaysTable:

    async def test_table_covers_every_pair(self, db: AsyncSession, developer, tester):
        next_week = date(2025, 7, 21)
        await seed_time_off(db, developer.id, FRI, date(2025, 7, 22))

        table = await working_days_table(
            db, [developer.id, tester.id], [WEEK, next_week], CapacityTunables(),
        )

        assert table == {
            (developer.id, WEEK): 4,
            (developer.id, next_week): 3,
            (tester.id, WEEK): 5,
            (tester.id, next_week): 5,
        }

    async def test_empty_inputs(self, db: AsyncSession):
        assert await working_days_table(db, [], [WEEK], CapacityTunables()) == {}
