"""Capacity router — allocations, copy-forward, team overview, priorities, tickets.

Team overview is public (dashboard); everything else requires authentication.
Allocation writes require the ``can_edit_allocations`` capability.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.auth.dependencies import get_current_user, require_capability
from capacity_tracker.capacity.schemas import (
    AllocationOut,
    AllocationUpdate,
    CopyWeekRequest,
    CopyWeekResponse,
    PriorityCapacityResponse,
    TeamWeekOverview,
    TicketOverviewResponse,
)
from capacity_tracker.capacity.service import CapacityService
from capacity_tracker.common.constants import DEFAULT_OVERVIEW_WEEKS, MAX_OVERVIEW_WEEKS
from capacity_tracker.common.rate_limit import PUBLIC_DASHBOARD_LIMIT, limiter
from capacity_tracker.database import get_db
from capacity_tracker.integrations.tickets import TicketCache, get_ticket_cache
from capacity_tracker.users.models import User

router = APIRouter(prefix="", tags=["capacity"])

_require_allocation_editor = require_capability(
    "can_edit_allocations", "Only administrators and managers can edit allocations.",
)


# ── GET /allocations ────────────────────────────────────────────────

@router.get("/allocations", response_model=list[AllocationOut])
async def list_allocations(
    week_start: Optional[date] = Query(None, description="Any day of the first week; defaults to this week"),
    weeks: int = Query(DEFAULT_OVERVIEW_WEEKS, ge=1, le=MAX_OVERVIEW_WEEKS),
    user_id: Optional[uuid.UUID] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Allocations with derived hours, ordered by week then user name."""
    return await CapacityService.get_allocations(
        db, week_start=week_start, weeks=weeks, user_id=user_id,
    )


# ── PUT /allocations/{user_id}/{week_start} ─────────────────────────

@router.put("/allocations/{user_id}/{week_start}", response_model=AllocationOut)
async def update_allocation(
    user_id: uuid.UUID,
    week_start: date,
    body: AllocationUpdate,
    user: User = Depends(_require_allocation_editor),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace one user's allocation for a week. 400 if the sum exceeds 100 %."""
    return await CapacityService.update_allocation(
        db, user_id, week_start, body, actor_id=user.id,
    )


# ── POST /copy-from-previous-week ───────────────────────────────────

@router.post("/copy-from-previous-week", response_model=CopyWeekResponse)
async def copy_from_previous_week(
    body: CopyWeekRequest,
    user: User = Depends(_require_allocation_editor),
    db: AsyncSession = Depends(get_db),
):
    return await CapacityService.copy_from_previous_week(
        db, body.week_start, actor_id=user.id,
    )


# ── GET /team-overview (public) ─────────────────────────────────────

@router.get("/team-overview", response_model=list[TeamWeekOverview])
@limiter.limit(PUBLIC_DASHBOARD_LIMIT)
async def team_overview(
    request: Request,
    week_start: Optional[date] = Query(None),
    weeks: int = Query(DEFAULT_OVERVIEW_WEEKS, ge=1, le=MAX_OVERVIEW_WEEKS),
    db: AsyncSession = Depends(get_db),
):
    """Per-week team capacity rollup. No authentication required."""
    return await CapacityService.get_team_overview(db, week_start=week_start, weeks=weeks)


# ── GET /todo-capacity ──────────────────────────────────────────────

@router.get("/todo-capacity", response_model=PriorityCapacityResponse)
async def todo_capacity(
    week_start: Optional[date] = Query(None, description="Defaults to the current week"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Hours per weekly priority, largest first."""
    return await CapacityService.get_priority_capacity(db, week_start=week_start)


# ── GET /jira-tickets ───────────────────────────────────────────────

@router.get("/jira-tickets", response_model=TicketOverviewResponse)
async def jira_tickets(
    user: User = Depends(get_current_user),
    cache: TicketCache = Depends(get_ticket_cache),
    db: AsyncSession = Depends(get_db),
):
    return await CapacityService.get_ticket_overview(db, cache)
