"""Capacity service layer — allocations, hours derivation, team rollups.

Business logic:
  - max hours = working days * hours per day * pace factor
  - allocated hours = max hours * total allocation % / 100
  - Allocation upsert with the 100 % ceiling
  - Copy a week's allocations forward
  - Team overview (availability vs. utilization) and weekly-priority rollup
  - Ticket overview backed by the in-memory ticket cache

Only capacity subjects (see ``common.access``) appear in any rollup.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from capacity_tracker.app_settings.service import CapacityTunables, SettingsService
from capacity_tracker.capacity.models import Allocation
from capacity_tracker.capacity.schemas import (
    AllocationOut,
    AllocationUpdate,
    CopyWeekResponse,
    PriorityCapacity,
    PriorityCapacityResponse,
    TeamWeekOverview,
    TicketOut,
    TicketOverviewResponse,
    UserTickets,
)
from capacity_tracker.capacity.working_days import max_hours, working_days_table
from capacity_tracker.common.access import capacity_subject_roles
from capacity_tracker.common.audit import create_audit_entry
from capacity_tracker.common.constants import (
    ALLOCATION_CATEGORIES,
    DATE_FORMAT,
    DEFAULT_OVERVIEW_WEEKS,
    MAX_TOTAL_ALLOCATION,
)
from capacity_tracker.common.dates import current_week_start, start_of_week
from capacity_tracker.common.exceptions import NotFoundException, ValidationException
from capacity_tracker.integrations.tickets import TicketCache
from capacity_tracker.users.models import User
from capacity_tracker.users.schemas import UserBrief

logger = logging.getLogger(__name__)

# Float noise allowance when comparing a category sum against 100 %
_SUM_TOLERANCE = 1e-9


def _is_subject():
    return User.role.in_(capacity_subject_roles())


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


# ═════════════════════════════════════════════════════════════════════
# CapacityService
# ═════════════════════════════════════════════════════════════════════


class CapacityService:
    """Async capacity operations: allocations, copy-forward, rollups."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_allocation_response(
        alloc: Allocation,
        working_days: int,
        tunables: CapacityTunables,
        *,
        user: Optional[User] = None,
    ) -> AllocationOut:
        """Build AllocationOut from ORM plus the derived hours of its week."""
        out = AllocationOut.model_validate(alloc)
        owner = user or alloc.user
        if owner is not None:
            out.user = UserBrief.model_validate(owner)

        total = alloc.total_allocation
        hours = max_hours(working_days, tunables)
        allocated = hours * total / 100

        out.total_allocation = total
        out.working_days = working_days
        out.max_working_days = tunables.working_days_per_week
        out.max_hours = hours
        out.allocated_hours = allocated
        out.available_hours = hours - allocated
        out.week_start_formatted = alloc.week_start.strftime(DATE_FORMAT)
        return out

    @staticmethod
    async def _enrich_all(
        db: AsyncSession,
        allocations: Sequence[Allocation],
        tunables: CapacityTunables,
    ) -> list[AllocationOut]:
        days = await working_days_table(
            db,
            [a.user_id for a in allocations],
            [a.week_start for a in allocations],
            tunables,
        )
        return [
            CapacityService._build_allocation_response(
                a, days[(a.user_id, a.week_start)], tunables,
            )
            for a in allocations
        ]

    @staticmethod
    async def _subject_users(db: AsyncSession) -> list[User]:
        result = await db.execute(select(User).where(_is_subject()).order_by(User.name))
        return list(result.scalars().all())

    @staticmethod
    def _validate_total(data: AllocationUpdate) -> None:
        values = data.model_dump(include=set(ALLOCATION_CATEGORIES))
        total = sum(values.values())
        if total > MAX_TOTAL_ALLOCATION + _SUM_TOLERANCE:
            raise ValidationException(
                {"total_allocation": [
                    f"Total allocation cannot exceed {MAX_TOTAL_ALLOCATION:g}% "
                    f"(got {total:g}%)."
                ]}
            )

    # ─────────────────────────────────────────────────────────────────
    # Allocations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_allocations(
        db: AsyncSession,
        *,
        week_start: Optional[date] = None,
        weeks: int = DEFAULT_OVERVIEW_WEEKS,
        user_id: Optional[uuid.UUID] = None,
    ) -> list[AllocationOut]:
        """Allocations of capacity subjects in [week_start, week_start + weeks)."""
        first = start_of_week(week_start) if week_start else current_week_start()
        end = first + timedelta(weeks=weeks)

        query = (
            select(Allocation)
            .join(User, Allocation.user_id == User.id)
            .where(
                Allocation.week_start >= first,
                Allocation.week_start < end,
                _is_subject(),
            )
            .options(selectinload(Allocation.user))
            .order_by(Allocation.week_start, User.name)
        )
        if user_id is not None:
            query = query.where(Allocation.user_id == user_id)

        result = await db.execute(query)
        allocations = result.scalars().all()
        tunables = await SettingsService.load_tunables(db)
        return await CapacityService._enrich_all(db, allocations, tunables)

    @staticmethod
    async def update_allocation(
        db: AsyncSession,
        user_id: uuid.UUID,
        week_start: date,
        data: AllocationUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AllocationOut:
        """Upsert the allocation of ``user_id`` for the week containing ``week_start``."""
        CapacityService._validate_total(data)

        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))

        week = start_of_week(week_start)
        values = data.model_dump(include=set(ALLOCATION_CATEGORIES) | {"weekly_priority"})
        if values["weekly_priority"] is not None:
            values["weekly_priority"] = values["weekly_priority"].strip() or None

        result = await db.execute(
            select(Allocation).where(
                Allocation.user_id == user_id,
                Allocation.week_start == week,
            )
        )
        alloc = result.scalars().first()
        old_values = None
        if alloc is None:
            alloc = Allocation(user_id=user_id, week_start=week, **values)
            db.add(alloc)
            action = "create"
        else:
            old_values = {**alloc.category_values, "weekly_priority": alloc.weekly_priority}
            for field, value in values.items():
                setattr(alloc, field, value)
            action = "update"
        alloc.user = user
        await db.flush()

        await create_audit_entry(
            db,
            action=action,
            entity_type="allocation",
            entity_id=alloc.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values={"week_start": week.isoformat(), **values},
        )
        logger.info(
            "Allocation %s for user %s week %s (total %.1f%%)",
            action, user_id, week, alloc.total_allocation,
        )

        tunables = await SettingsService.load_tunables(db)
        days = await working_days_table(db, [user_id], [week], tunables)
        return CapacityService._build_allocation_response(
            alloc, days[(user_id, week)], tunables, user=user,
        )

    @staticmethod
    async def copy_from_previous_week(
        db: AsyncSession,
        week_start: date,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> CopyWeekResponse:
        """Copy every capacity-subject allocation of week W-1 into week W.

        Existing target rows are overwritten. Raises 404 when W-1 is empty.
        """
        target = start_of_week(week_start)
        source = target - timedelta(weeks=1)

        result = await db.execute(
            select(Allocation)
            .join(User, Allocation.user_id == User.id)
            .where(Allocation.week_start == source, _is_subject())
            .options(selectinload(Allocation.user))
            .order_by(User.name)
        )
        source_rows = result.scalars().all()
        if not source_rows:
            raise NotFoundException(
                "Allocation", source.isoformat(),
                detail="No allocations found for the previous week.",
            )

        existing_result = await db.execute(
            select(Allocation).where(
                Allocation.week_start == target,
                Allocation.user_id.in_([row.user_id for row in source_rows]),
            )
        )
        existing = {row.user_id: row for row in existing_result.scalars().all()}

        copied: list[Allocation] = []
        for row in source_rows:
            values = {**row.category_values, "weekly_priority": row.weekly_priority}
            alloc = existing.get(row.user_id)
            if alloc is None:
                alloc = Allocation(user_id=row.user_id, week_start=target, **values)
                db.add(alloc)
            else:
                for field, value in values.items():
                    setattr(alloc, field, value)
            alloc.user = row.user
            copied.append(alloc)
        await db.flush()

        await create_audit_entry(
            db,
            action="copy",
            entity_type="allocation_week",
            entity_id=uuid.uuid5(uuid.NAMESPACE_URL, f"allocations/{target.isoformat()}"),
            actor_id=actor_id,
            old_values={"source_week": source.isoformat()},
            new_values={
                "target_week": target.isoformat(),
                "copied_count": len(copied),
                "overwritten_count": len(existing),
            },
        )
        logger.info(
            "Copied %d allocations from %s to %s (%d overwritten)",
            len(copied), source, target, len(existing),
        )

        tunables = await SettingsService.load_tunables(db)
        return CopyWeekResponse(
            message=f"Copied {len(copied)} allocations from previous week.",
            copied_count=len(copied),
            allocations=await CapacityService._enrich_all(db, copied, tunables),
            source_week=source.strftime(DATE_FORMAT),
            target_week=target.strftime(DATE_FORMAT),
        )

    # ─────────────────────────────────────────────────────────────────
    # Team overview
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_team_overview(
        db: AsyncSession,
        *,
        week_start: Optional[date] = None,
        weeks: int = DEFAULT_OVERVIEW_WEEKS,
    ) -> list[TeamWeekOverview]:
        """Per-week team rollup: capacity net of time off vs. allocated hours."""
        first = start_of_week(week_start) if week_start else current_week_start()
        week_list = [first + timedelta(weeks=i) for i in range(weeks)]

        tunables = await SettingsService.load_tunables(db)
        users = await CapacityService._subject_users(db)

        result = await db.execute(
            select(Allocation)
            .join(User, Allocation.user_id == User.id)
            .where(
                Allocation.week_start >= first,
                Allocation.week_start < first + timedelta(weeks=weeks),
                _is_subject(),
            )
        )
        by_week: dict[date, list[Allocation]] = {}
        for alloc in result.scalars().all():
            by_week.setdefault(alloc.week_start, []).append(alloc)

        days = await working_days_table(db, [u.id for u in users], week_list, tunables)
        theoretical = (
            len(users) * tunables.working_days_per_week * tunables.hours_per_working_day
        )

        overview: list[TeamWeekOverview] = []
        for week in week_list:
            total_capacity = sum(max_hours(days[(u.id, week)], tunables) for u in users)
            breakdown = {name: 0.0 for name in ALLOCATION_CATEGORIES}
            allocated = 0.0
            week_allocations = by_week.get(week, [])
            for alloc in week_allocations:
                hours = max_hours(days[(alloc.user_id, week)], tunables)
                allocated += hours * alloc.total_allocation / 100
                for name, pct in alloc.category_values.items():
                    breakdown[name] += hours * pct / 100

            overview.append(
                TeamWeekOverview(
                    week_start=week,
                    total_team_members=len(users),
                    allocated_members=len(week_allocations),
                    total_capacity=total_capacity,
                    theoretical_max_capacity=theoretical,
                    allocated_capacity=allocated,
                    availability_pct=_pct(total_capacity, theoretical),
                    utilization_pct=_pct(allocated, theoretical),
                    category_breakdown=breakdown,
                )
            )
        return overview

    # ─────────────────────────────────────────────────────────────────
    # Weekly-priority rollup
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_priority_capacity(
        db: AsyncSession,
        *,
        week_start: Optional[date] = None,
    ) -> PriorityCapacityResponse:
        """Hours per weekly priority, grouped case-insensitively."""
        week = start_of_week(week_start) if week_start else current_week_start()

        result = await db.execute(
            select(Allocation)
            .join(User, Allocation.user_id == User.id)
            .where(
                Allocation.week_start == week,
                Allocation.weekly_priority.is_not(None),
                _is_subject(),
            )
            .options(selectinload(Allocation.user))
            .order_by(User.name)
        )
        allocations = [
            a for a in result.scalars().all() if a.weekly_priority and a.weekly_priority.strip()
        ]

        tunables = await SettingsService.load_tunables(db)
        days = await working_days_table(
            db, [a.user_id for a in allocations], [week], tunables,
        )

        groups: dict[str, PriorityCapacity] = {}
        members: dict[str, set[uuid.UUID]] = {}
        for alloc in allocations:
            label = alloc.weekly_priority.strip()
            group_key = label.lower()
            group = groups.get(group_key)
            if group is None:
                group = PriorityCapacity(
                    priority=label,
                    category_hours={name: 0.0 for name in ALLOCATION_CATEGORIES},
                    total_hours=0.0,
                    user_count=0,
                    users=[],
                )
                groups[group_key] = group
                members[group_key] = set()

            hours = max_hours(days[(alloc.user_id, week)], tunables)
            for name, pct in alloc.category_values.items():
                group.category_hours[name] += hours * pct / 100
            group.total_hours += hours * alloc.total_allocation / 100

            if alloc.user_id not in members[group_key]:
                members[group_key].add(alloc.user_id)
                group.users.append(alloc.user.name)
                group.user_count += 1

        return PriorityCapacityResponse(
            week_start=week,
            total_allocations=len(allocations),
            priorities=sorted(groups.values(), key=lambda g: g.total_hours, reverse=True),
        )

    # ─────────────────────────────────────────────────────────────────
    # Ticket overview
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_ticket_overview(
        db: AsyncSession,
        cache: TicketCache,
    ) -> TicketOverviewResponse:
        """In-progress tickets per capacity subject, from the ticket cache."""
        if not cache.enabled:
            return TicketOverviewResponse(
                enabled=False,
                message="Jira integration is not configured.",
            )

        users = await CapacityService._subject_users(db)
        return TicketOverviewResponse(
            enabled=True,
            last_refreshed=cache.last_refreshed,
            user_tickets=[
                UserTickets(
                    user_id=user.id,
                    name=user.name,
                    email=user.email,
                    tickets=[
                        TicketOut(
                            key=t.key,
                            summary=t.summary,
                            url=cache.ticket_url(t.key),
                            issue_type=t.issue_type,
                            sprint=t.sprint,
                        )
                        for t in cache.tickets_for(user.email)
                    ],
                )
                for user in users
            ],
        )
