"""Time-off router — request, approve/reject, cancel, delete, team holidays, calendar.

The pending-count endpoint is public (dashboard badge); all others require
authentication. Role rules are enforced in ``TimeOffService``.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.auth.dependencies import get_current_user, require_capability
from capacity_tracker.common.constants import TimeOffStatus
from capacity_tracker.common.rate_limit import PUBLIC_DASHBOARD_LIMIT, limiter
from capacity_tracker.database import get_db
from capacity_tracker.time_off.schemas import (
    PendingCountOut,
    TeamHolidayCreate,
    TeamHolidayResponse,
    TimeOffCancelRequest,
    TimeOffCreate,
    TimeOffStatusUpdate,
    TimeOffView,
)
from capacity_tracker.time_off.service import TimeOffService
from capacity_tracker.users.models import User

router = APIRouter(prefix="", tags=["time-off"])


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=list[TimeOffView])
async def list_time_off(
    user_id: Optional[uuid.UUID] = Query(None),
    status: Optional[TimeOffStatus] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Requests visible to the caller's role, newest first."""
    return await TimeOffService.list_requests(
        db,
        user,
        user_id=user_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=TimeOffView, status_code=201)
async def create_time_off(
    body: TimeOffCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Request time off. Managers and QA managers are approved immediately."""
    return await TimeOffService.create_request(db, user, body)


# ── GET /calendar ───────────────────────────────────────────────────

@router.get("/calendar", response_model=list[TimeOffView])
async def time_off_calendar(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """All approved time off, for the holiday calendar."""
    return await TimeOffService.get_calendar(
        db, user, start_date=start_date, end_date=end_date,
    )


# ── GET /dashboard/pending-count (public) ───────────────────────────

@router.get("/dashboard/pending-count", response_model=PendingCountOut)
@limiter.limit(PUBLIC_DASHBOARD_LIMIT)
async def pending_count(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    return PendingCountOut(count=await TimeOffService.pending_count(db))


# ── POST /admin/create-holiday ──────────────────────────────────────

@router.post("/admin/create-holiday", response_model=TeamHolidayResponse, status_code=201)
async def create_team_holiday(
    body: TeamHolidayCreate,
    user: User = Depends(
        require_capability("holiday_target_roles", "Not authorized to create team holidays.")
    ),
    db: AsyncSession = Depends(get_db),
):
    """Approved holiday for several users; rejected as a whole if any target conflicts."""
    return await TimeOffService.create_team_holiday(db, user, body)


# ── PUT /{id} ───────────────────────────────────────────────────────

@router.put("/{request_id}", response_model=TimeOffView)
async def review_time_off(
    request_id: uuid.UUID,
    body: TimeOffStatusUpdate,
    user: User = Depends(
        require_capability("approvable_roles", "Not authorized to approve time-off requests.")
    ),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending request."""
    return await TimeOffService.review_request(db, user, request_id, body.status)


# ── POST /{id}/cancel ───────────────────────────────────────────────

@router.post("/{request_id}/cancel", response_model=TimeOffView)
async def cancel_time_off(
    request_id: uuid.UUID,
    body: Optional[TimeOffCancelRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TimeOffService.cancel_request(
        db, user, request_id, reason=body.reason if body else None,
    )


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{request_id}", status_code=204)
async def delete_time_off(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await TimeOffService.delete_request(db, user, request_id)
    return Response(status_code=204)
