"""Tests for capacity allocations, copy-forward and team rollups.

Covers CapacityService directly and the /api/v1/capacity endpoints
(role checks, public dashboard, RFC 7807 errors).
"""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.capacity.models import Allocation
from capacity_tracker.capacity.schemas import AllocationUpdate
from capacity_tracker.capacity.service import CapacityService
from capacity_tracker.common.audit import AuditTrail
from capacity_tracker.common.constants import UserRole
from capacity_tracker.common.exceptions import NotFoundException, ValidationException
from capacity_tracker.integrations.tickets import TicketCache
from tests.conftest import WEEK, auth_headers, seed_allocation, seed_time_off, seed_user

PREVIOUS_WEEK = date(2025, 7, 7)
WED = date(2025, 7, 16)
THU = date(2025, 7, 17)


async def _count_allocations(db: AsyncSession, week_start: date) -> int:
    result = await db.execute(
        select(func.count(Allocation.id)).where(Allocation.week_start == week_start)
    )
    return result.scalar_one()


# ═════════════════════════════════════════════════════════════════════
# 1. Allocation upsert: service layer
# ═════════════════════════════════════════════════════════════════════


class TestUpdateAllocation:
    """Tests for CapacityService.update_allocation()."""

    async def test_total_of_exactly_100_is_accepted(self, db: AsyncSession, developer, manager):
        data = AllocationUpdate(backend_development=50, code_review=30, prod_support=20)

        result = await CapacityService.update_allocation(
            db, developer.id, WEEK, data, actor_id=manager.id,
        )

        assert result.total_allocation == pytest.approx(100.0)
        assert result.working_days == 5
        assert result.max_hours == pytest.approx(32.0)
        assert result.allocated_hours == pytest.approx(32.0)
        assert result.available_hours == pytest.approx(0.0)
        assert result.user.name == developer.name

    async def test_total_over_100_is_rejected(self, db: AsyncSession, developer):
        data = AllocationUpdate(backend_development=50, frontend_development=50.0001)

        with pytest.raises(ValidationException) as exc_info:
            await CapacityService.update_allocation(db, developer.id, WEEK, data)
        assert "total_allocation" in exc_info.value.errors
        assert await _count_allocations(db, WEEK) == 0

    def test_single_category_over_100_fails_schema(self):
        with pytest.raises(ValidationError):
            AllocationUpdate(ux=101)

    def test_negative_category_fails_schema(self):
        with pytest.raises(ValidationError):
            AllocationUpdate(ux=-1)

    async def test_hours_net_of_time_off(self, db: AsyncSession, developer):
        """Wed–Thu off → 3 days, 19.2 h max; 50 % allocates 9.6 h."""
        await seed_time_off(db, developer.id, WED, THU)

        result = await CapacityService.update_allocation(
            db, developer.id, WEEK, AllocationUpdate(backend_development=50),
        )

        assert result.working_days == 3
        assert result.max_working_days == 5
        assert result.max_hours == pytest.approx(19.2)
        assert result.allocated_hours == pytest.approx(9.6)
        assert result.allocated_hours + result.available_hours == pytest.approx(result.max_hours)

    async def test_upsert_keeps_one_row_per_user_week(self, db: AsyncSession, developer):
        await CapacityService.update_allocation(
            db, developer.id, WEEK, AllocationUpdate(backend_development=40),
        )
        result = await CapacityService.update_allocation(
            db, developer.id, WED, AllocationUpdate(ux=25, weekly_priority="  Launch  "),
        )

        assert await _count_allocations(db, WEEK) == 1
        assert result.week_start == WEEK
        assert result.week_start_formatted == "2025-07-14"
        assert result.backend_development == 0
        assert result.ux == 25
        assert result.weekly_priority == "Launch"

    async def test_unknown_user_is_404(self, db: AsyncSession):
        import uuid

        with pytest.raises(NotFoundException):
            await CapacityService.update_allocation(
                db, uuid.uuid4(), WEEK, AllocationUpdate(ux=10),
            )

    async def test_audit_entries_written(self, db: AsyncSession, developer, manager):
        await CapacityService.update_allocation(
            db, developer.id, WEEK, AllocationUpdate(ux=10), actor_id=manager.id,
        )
        await CapacityService.update_allocation(
            db, developer.id, WEEK, AllocationUpdate(ux=20), actor_id=manager.id,
        )

        result = await db.execute(
            select(AuditTrail.action)
            .where(AuditTrail.entity_type == "allocation")
            .order_by(AuditTrail.created_at)
        )
        assert result.scalars().all() == ["create", "update"]


# ═════════════════════════════════════════════════════════════════════
# 2. Reads and copy-forward
# ═════════════════════════════════════════════════════════════════════


class TestGetAllocations:

    async def test_only_capacity_subjects_are_listed(
        self, db: AsyncSession, developer, tester, manager,
    ):
        await seed_allocation(db, developer.id, backend_development=50)
        await seed_allocation(db, tester.id, code_review=40)
        await seed_allocation(db, manager.id, ux=100)

        result = await CapacityService.get_allocations(db, week_start=WEEK, weeks=1)

        assert [a.user_id for a in result] == [developer.id, tester.id]

    async def test_window_and_user_filter(self, db: AsyncSession, developer, tester):
        await seed_allocation(db, developer.id, PREVIOUS_WEEK, ux=10)
        await seed_allocation(db, developer.id, WEEK, ux=20)
        await seed_allocation(db, tester.id, WEEK, ux=30)

        result = await CapacityService.get_allocations(
            db, week_start=WEEK, weeks=2, user_id=developer.id,
        )

        assert len(result) == 1
        assert result[0].ux == 20
        assert result[0].max_hours == pytest.approx(32.0)


class TestCopyFromPreviousWeek:

    async def test_empty_source_week_is_404(self, db: AsyncSession, developer):
        with pytest.raises(NotFoundException) as exc_info:
            await CapacityService.copy_from_previous_week(db, WEEK)
        assert exc_info.value.detail == "No allocations found for the previous week."

    async def test_copies_values_and_priority(self, db: AsyncSession, developer, tester, manager):
        await seed_allocation(
            db, developer.id, PREVIOUS_WEEK, backend_development=70, weekly_priority="Launch",
        )
        await seed_allocation(db, tester.id, PREVIOUS_WEEK, code_review=50)

        result = await CapacityService.copy_from_previous_week(db, WEEK, actor_id=manager.id)

        assert result.copied_count == 2
        assert result.message == "Copied 2 allocations from previous week."
        assert result.source_week == "2025-07-07"
        assert result.target_week == "2025-07-14"
        by_user = {a.user_id: a for a in result.allocations}
        assert by_user[developer.id].backend_development == 70
        assert by_user[developer.id].weekly_priority == "Launch"
        assert by_user[tester.id].code_review == 50

    async def test_copy_twice_is_idempotent(self, db: AsyncSession, developer):
        await seed_allocation(db, developer.id, PREVIOUS_WEEK, ux=60)

        first = await CapacityService.copy_from_previous_week(db, WEEK)
        second = await CapacityService.copy_from_previous_week(db, WEEK)

        assert first.copied_count == second.copied_count == 1
        assert await _count_allocations(db, WEEK) == 1
        assert second.allocations[0].ux == 60

    async def test_existing_target_is_overwritten(self, db: AsyncSession, developer):
        await seed_allocation(db, developer.id, PREVIOUS_WEEK, ux=60)
        await seed_allocation(db, developer.id, WEEK, backend_development=90)

        result = await CapacityService.copy_from_previous_week(db, WEEK)

        alloc = result.allocations[0]
        assert alloc.ux == 60
        assert alloc.backend_development == 0
        assert await _count_allocations(db, WEEK) == 1


# ═════════════════════════════════════════════════════════════════════
# 3. Rollups
# ═════════════════════════════════════════════════════════════════════


class TestTeamOverview:

    async def test_capacity_net_of_time_off(self, db: AsyncSession, developer, tester, manager):
        await seed_time_off(db, developer.id, WED, THU)
        await seed_allocation(db, developer.id, backend_development=50)
        await seed_allocation(db, manager.id, ux=100)

        [week] = await CapacityService.get_team_overview(db, week_start=WEEK, weeks=1)

        # two subjects: 32 h + 19.2 h; theoretical 2 * 5 * 6.4 h
        assert week.total_team_members == 2
        assert week.allocated_members == 1
        assert week.theoretical_max_capacity == pytest.approx(64.0)
        assert week.total_capacity == pytest.approx(51.2)
        assert week.allocated_capacity == pytest.approx(9.6)
        assert week.availability_pct == pytest.approx(80.0)
        assert week.utilization_pct == pytest.approx(15.0)
        assert week.category_breakdown["backend_development"] == pytest.approx(9.6)
        assert week.category_breakdown["ux"] == 0

    async def test_qa_manager_counts_toward_team(
        self, db: AsyncSession, developer, qa_manager, manager,
    ):
        await seed_allocation(db, qa_manager.id, code_review=50)

        [week] = await CapacityService.get_team_overview(db, week_start=WEEK, weeks=1)

        assert week.total_team_members == 2
        assert week.allocated_members == 1
        assert week.theoretical_max_capacity == pytest.approx(64.0)
        assert week.category_breakdown["code_review"] == pytest.approx(16.0)

    async def test_one_entry_per_requested_week(self, db: AsyncSession, developer):
        result = await CapacityService.get_team_overview(db, week_start=WED, weeks=3)

        assert [w.week_start for w in result] == [
            WEEK, date(2025, 7, 21), date(2025, 7, 28),
        ]
        assert all(w.allocated_capacity == 0 for w in result)

    async def test_empty_team_has_zero_percentages(self, db: AsyncSession):
        [week] = await CapacityService.get_team_overview(db, week_start=WEEK, weeks=1)
        assert week.theoretical_max_capacity == 0
        assert week.availability_pct == 0
        assert week.utilization_pct == 0


class TestPriorityCapacity:

    async def test_groups_case_insensitively_and_sorts_by_hours(
        self, db: AsyncSession, developer, tester,
    ):
        ed = await seed_user(db, UserRole.developer, name="Ed Engineer")
        await seed_allocation(
            db, developer.id, backend_development=60, weekly_priority="Release 2.4",
        )
        await seed_allocation(
            db, tester.id, code_review=50, weekly_priority="release 2.4 ",
        )
        await seed_allocation(db, ed.id, prod_support=100, weekly_priority="Bugs")

        result = await CapacityService.get_priority_capacity(db, week_start=WEEK)

        assert result.total_allocations == 3
        assert [p.priority for p in result.priorities] == ["Release 2.4", "Bugs"]
        release = result.priorities[0]
        assert release.total_hours == pytest.approx(35.2)
        assert release.user_count == 2
        assert release.users == ["Dana Dev", "Theo Tester"]
        assert release.category_hours["backend_development"] == pytest.approx(19.2)
        assert release.category_hours["code_review"] == pytest.approx(16.0)

    async def test_blank_priorities_are_ignored(self, db: AsyncSession, developer, tester):
        await seed_allocation(db, developer.id, ux=50, weekly_priority="   ")
        await seed_allocation(db, tester.id, ux=50)

        result = await CapacityService.get_priority_capacity(db, week_start=WEEK)

        assert result.total_allocations == 0
        assert result.priorities == []


class TestTicketOverview:

    async def test_disabled_cache(self, db: AsyncSession, developer):
        result = await CapacityService.get_ticket_overview(db, TicketCache())

        assert result.enabled is False
        assert result.message == "Jira integration is not configured."
        assert result.user_tickets == []


# ═════════════════════════════════════════════════════════════════════
# 4. HTTP endpoints
# ═════════════════════════════════════════════════════════════════════


class TestCapacityEndpoints:

    async def test_allocations_require_auth(self, client):
        resp = await client.get("/api/v1/capacity/allocations")
        assert resp.status_code == 401

    async def test_list_allocations(self, client, developer, manager, db: AsyncSession):
        await seed_allocation(db, developer.id, backend_development=25)

        resp = await client.get(
            "/api/v1/capacity/allocations",
            params={"week_start": "2025-07-14", "weeks": 1},
            headers=auth_headers(developer),
        )

        assert resp.status_code == 200
        [row] = resp.json()
        assert row["total_allocation"] == 25
        assert row["allocated_hours"] == pytest.approx(8.0)
        assert row["user"]["email"] == developer.email

    @pytest.mark.parametrize("role", [UserRole.developer, UserRole.qa_manager, UserRole.view_only])
    async def test_put_forbidden_for_non_editors(self, client, db: AsyncSession, developer, role):
        actor = await seed_user(db, role)

        resp = await client.put(
            f"/api/v1/capacity/allocations/{developer.id}/2025-07-14",
            json={"ux": 10},
            headers=auth_headers(actor),
        )

        assert resp.status_code == 403

    async def test_put_as_manager(self, client, developer, manager):
        resp = await client.put(
            f"/api/v1/capacity/allocations/{developer.id}/2025-07-16",
            json={"backend_development": 60, "code_review": 40, "weekly_priority": "Launch"},
            headers=auth_headers(manager),
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["week_start"] == "2025-07-14"
        assert data["total_allocation"] == 100
        assert data["weekly_priority"] == "Launch"

    async def test_put_over_100_returns_problem_detail(self, client, developer, admin):
        resp = await client.put(
            f"/api/v1/capacity/allocations/{developer.id}/2025-07-14",
            json={"backend_development": 60, "frontend_development": 41},
            headers=auth_headers(admin),
        )

        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("application/problem+json")
        assert "total_allocation" in resp.json()["errors"]

    async def test_copy_without_source_is_404(self, client, developer, manager):
        resp = await client.post(
            "/api/v1/capacity/copy-from-previous-week",
            json={"week_start": "2025-07-14"},
            headers=auth_headers(manager),
        )

        assert resp.status_code == 404
        assert resp.json()["detail"] == "No allocations found for the previous week."

    async def test_team_overview_is_public(self, client, developer):
        resp = await client.get(
            "/api/v1/capacity/team-overview",
            params={"week_start": "2025-07-14", "weeks": 2},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert len(body) == 2
        assert body[0]["total_capacity"] == pytest.approx(32.0)

    async def test_weeks_out_of_range(self, client):
        resp = await client.get("/api/v1/capacity/team-overview", params={"weeks": 0})
        assert resp.status_code == 400

    async def test_todo_capacity(self, client, db: AsyncSession, developer):
        await seed_allocation(db, developer.id, ux=50, weekly_priority="Launch")

        resp = await client.get(
            "/api/v1/capacity/todo-capacity",
            params={"week_start": "2025-07-14"},
            headers=auth_headers(developer),
        )

        assert resp.status_code == 200
        assert resp.json()["priorities"][0]["total_hours"] == pytest.approx(16.0)

    async def test_jira_tickets_disabled(self, client, developer):
        resp = await client.get(
            "/api/v1/capacity/jira-tickets", headers=auth_headers(developer),
        )

        assert resp.status_code == 200
        assert resp.json()["enabled"] is False
