"""Time-off service layer — request lifecycle, approvals, team holidays.

State machine:
  pending  → approved | rejected
  approved → cancelled
  rejected, cancelled are terminal

Who may do what is looked up in ``common.access``; every read goes through
``project_request`` so the leave type is only shown to admins and owners.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from capacity_tracker.common import access
from capacity_tracker.common.audit import create_audit_entry, utcnow
from capacity_tracker.common.constants import (
    ACTIVE_TIME_OFF_STATUSES,
    ADMIN_HOLIDAY_DEFAULT_REASON,
    TimeOffStatus,
)
from capacity_tracker.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from capacity_tracker.time_off.models import TimeOffRequest
from capacity_tracker.time_off.schemas import (
    TeamHolidayCreate,
    TeamHolidayResponse,
    TimeOffCreate,
    TimeOffRequestOut,
    TimeOffRequestRedactedOut,
    TimeOffView,
)
from capacity_tracker.users.models import User

logger = logging.getLogger(__name__)

_REVIEW_OUTCOMES = (TimeOffStatus.approved, TimeOffStatus.rejected)

_WITH_PEOPLE = (
    selectinload(TimeOffRequest.user),
    selectinload(TimeOffRequest.approver),
    selectinload(TimeOffRequest.canceller),
    selectinload(TimeOffRequest.creator),
)


def project_request(request: TimeOffRequest, viewer: User) -> TimeOffView:
    """Read view of ``request`` for ``viewer``: typed for admin/owner, redacted otherwise."""
    if access.sees_time_off_type(viewer.id, viewer.role, request.user_id):
        return TimeOffRequestOut.model_validate(request)
    return TimeOffRequestRedactedOut.model_validate(request)


def _snapshot(request: TimeOffRequest) -> dict:
    return {
        "user_id": str(request.user_id),
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
        "type": request.type.value,
        "status": request.status.value,
        "is_admin_created": request.is_admin_created,
    }


def _validate_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationException(
            {"end_date": ["End date must be on or after the start date."]}
        )


# ═════════════════════════════════════════════════════════════════════
# TimeOffService
# ═════════════════════════════════════════════════════════════════════


class TimeOffService:
    """Async time-off operations: list, create, review, cancel, delete, holidays."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> TimeOffRequest:
        result = await db.execute(
            select(TimeOffRequest)
            .where(TimeOffRequest.id == request_id)
            .options(*_WITH_PEOPLE)
            .execution_options(populate_existing=True)
        )
        request = result.scalars().first()
        if request is None:
            raise NotFoundException("TimeOffRequest", str(request_id))
        return request

    @staticmethod
    async def find_overlap(
        db: AsyncSession,
        user_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> Optional[TimeOffRequest]:
        """A pending/approved request of the user sharing at least one day."""
        result = await db.execute(
            select(TimeOffRequest)
            .where(
                TimeOffRequest.user_id == user_id,
                TimeOffRequest.status.in_(ACTIVE_TIME_OFF_STATUSES),
                TimeOffRequest.start_date <= end_date,
                TimeOffRequest.end_date >= start_date,
            )
            .limit(1)
        )
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        viewer: User,
        *,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[TimeOffStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[TimeOffView]:
        """Requests visible to ``viewer``, newest first.

        Date filters keep requests that overlap [start_date, end_date].
        """
        query = select(TimeOffRequest).join(User, TimeOffRequest.user_id == User.id)

        scope = access.visible_time_off_roles(viewer.role)
        if scope is not None:
            if scope:
                query = query.where(
                    or_(TimeOffRequest.user_id == viewer.id, User.role.in_(scope))
                )
            else:
                query = query.where(TimeOffRequest.user_id == viewer.id)

        if user_id is not None:
            query = query.where(TimeOffRequest.user_id == user_id)
        if status is not None:
            query = query.where(TimeOffRequest.status == status)
        if start_date is not None:
            query = query.where(TimeOffRequest.end_date >= start_date)
        if end_date is not None:
            query = query.where(TimeOffRequest.start_date <= end_date)

        result = await db.execute(
            query.options(*_WITH_PEOPLE).order_by(TimeOffRequest.created_at.desc())
        )
        return [project_request(r, viewer) for r in result.scalars().all()]

    @staticmethod
    async def get_calendar(
        db: AsyncSession,
        viewer: User,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[TimeOffView]:
        """Approved requests of everybody, optionally limited to a date window."""
        query = select(TimeOffRequest).where(TimeOffRequest.status == TimeOffStatus.approved)
        if start_date is not None:
            query = query.where(TimeOffRequest.end_date >= start_date)
        if end_date is not None:
            query = query.where(TimeOffRequest.start_date <= end_date)

        result = await db.execute(
            query.options(*_WITH_PEOPLE).order_by(TimeOffRequest.created_at.desc())
        )
        return [project_request(r, viewer) for r in result.scalars().all()]

    @staticmethod
    async def pending_count(db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(TimeOffRequest.id)).where(
                TimeOffRequest.status == TimeOffStatus.pending,
            )
        )
        return result.scalar_one()

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        actor: User,
        data: TimeOffCreate,
    ) -> TimeOffView:
        """Request time off for yourself. Manager-tier requests are auto-approved."""
        caps = access.capabilities_for(actor.role)
        if not caps.can_request_time_off:
            raise ForbiddenException(
                detail=f"Role '{actor.role.value}' cannot request time off.",
            )
        _validate_range(data.start_date, data.end_date)

        if await TimeOffService.find_overlap(db, actor.id, data.start_date, data.end_date):
            raise StateConflictException(
                "You already have a pending or approved time-off request overlapping these dates.",
            )

        request = TimeOffRequest(
            user_id=actor.id,
            start_date=data.start_date,
            end_date=data.end_date,
            type=data.type,
            reason=data.reason,
            status=TimeOffStatus.pending,
        )
        if caps.auto_approves_own_time_off:
            request.status = TimeOffStatus.approved
            request.approved_by = actor.id
            request.approved_at = utcnow()
        db.add(request)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="time_off_request",
            entity_id=request.id,
            actor_id=actor.id,
            new_values=_snapshot(request),
        )
        logger.info(
            "Time-off %s created by %s (%s..%s, %s)",
            request.id, actor.id, request.start_date, request.end_date, request.status.value,
        )

        request = await TimeOffService._get_request(db, request.id)
        return project_request(request, actor)

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def review_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        status: TimeOffStatus,
    ) -> TimeOffView:
        """Move a pending request to approved or rejected."""
        if not access.is_approver(actor.role):
            raise ForbiddenException(detail="Not authorized to approve time-off requests.")
        if status not in _REVIEW_OUTCOMES:
            raise ValidationException(
                {"status": ["Status must be 'approved' or 'rejected'."]}
            )

        request = await TimeOffService._get_request(db, request_id)
        if request.status != TimeOffStatus.pending:
            raise StateConflictException(
                f"Request has already been processed (status: {request.status.value}).",
            )
        if not access.can_approve(actor.role, request.user.role):
            raise ForbiddenException(
                detail=access.approval_denial_reason(actor.role, request.user.role),
            )

        old = _snapshot(request)
        request.status = status
        request.approved_by = actor.id
        request.approved_at = utcnow()
        await db.flush()

        action = "approve" if status == TimeOffStatus.approved else "reject"
        await create_audit_entry(
            db,
            action=action,
            entity_type="time_off_request",
            entity_id=request.id,
            actor_id=actor.id,
            old_values=old,
            new_values=_snapshot(request),
        )
        logger.info("Time-off %s %sd by %s", request.id, action, actor.id)

        request = await TimeOffService._get_request(db, request.id)
        return project_request(request, actor)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> TimeOffView:
        """Owner withdraws an approved request."""
        request = await TimeOffService._get_request(db, request_id)
        if request.user_id != actor.id:
            raise ForbiddenException(detail="You can only cancel your own time-off requests.")
        if request.status != TimeOffStatus.approved:
            raise StateConflictException(
                f"Only approved requests can be cancelled (status: {request.status.value}).",
            )

        old = _snapshot(request)
        request.status = TimeOffStatus.cancelled
        request.cancelled_by = actor.id
        request.cancelled_at = utcnow()
        request.cancellation_reason = reason
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="time_off_request",
            entity_id=request.id,
            actor_id=actor.id,
            old_values=old,
            new_values={**_snapshot(request), "cancellation_reason": reason},
        )
        logger.info("Time-off %s cancelled by %s", request.id, actor.id)

        request = await TimeOffService._get_request(db, request.id)
        return project_request(request, actor)

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
    ) -> None:
        """Remove a request. Approved ones must normally be cancelled instead."""
        request = await TimeOffService._get_request(db, request_id)
        is_owner = request.user_id == actor.id
        if not is_owner and not access.is_approver(actor.role):
            raise ForbiddenException(detail="Not authorized to delete this time-off request.")

        if request.status == TimeOffStatus.approved and not access.can_delete_approved_time_off(
            actor.id, actor.role, request.user_id, request.is_admin_created,
        ):
            raise StateConflictException("Cannot delete approved requests. Use cancel instead.")

        old = _snapshot(request)
        await db.delete(request)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="time_off_request",
            entity_id=request_id,
            actor_id=actor.id,
            old_values=old,
        )
        logger.info("Time-off %s deleted by %s", request_id, actor.id)

    # ─────────────────────────────────────────────────────────────────
    # Team holidays
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_team_holiday(
        db: AsyncSession,
        actor: User,
        data: TeamHolidayCreate,
    ) -> TeamHolidayResponse:
        """Create one approved holiday per target user, all or nothing.

        Every target is validated before the first insert.
        """
        caps = access.capabilities_for(actor.role)
        if not caps.holiday_target_roles:
            raise ForbiddenException(detail="Not authorized to create team holidays.")
        _validate_range(data.start_date, data.end_date)

        user_ids = list(dict.fromkeys(data.user_ids))
        result = await db.execute(select(User).where(User.id.in_(user_ids)))
        users = {u.id: u for u in result.scalars().all()}

        invalid = [
            uid for uid in user_ids
            if uid not in users or not access.can_target_for_holiday(actor.role, users[uid].role)
        ]
        if invalid:
            raise ValidationException(
                {"user_ids": [
                    "Some users were not found or cannot be targeted; you can only "
                    f"create holidays for {caps.approval_scope_label}.",
                    *[str(uid) for uid in invalid],
                ]}
            )

        for uid in user_ids:
            if await TimeOffService.find_overlap(db, uid, data.start_date, data.end_date):
                raise StateConflictException(
                    f"User {users[uid].name} already has a time-off request for this period.",
                )

        now = utcnow()
        created: list[TimeOffRequest] = []
        for uid in user_ids:
            request = TimeOffRequest(
                user_id=uid,
                start_date=data.start_date,
                end_date=data.end_date,
                type=data.type,
                reason=data.reason or ADMIN_HOLIDAY_DEFAULT_REASON,
                status=TimeOffStatus.approved,
                is_admin_created=True,
                created_by=actor.id,
                approved_by=actor.id,
                approved_at=now,
            )
            db.add(request)
            created.append(request)
        await db.flush()

        for request in created:
            await create_audit_entry(
                db,
                action="create_holiday",
                entity_type="time_off_request",
                entity_id=request.id,
                actor_id=actor.id,
                new_values=_snapshot(request),
            )
        logger.info(
            "Team holiday %s..%s created by %s for %d users",
            data.start_date, data.end_date, actor.id, len(created),
        )

        reloaded = await db.execute(
            select(TimeOffRequest)
            .where(TimeOffRequest.id.in_([r.id for r in created]))
            .options(*_WITH_PEOPLE)
            .execution_options(populate_existing=True)
        )
        by_id = {r.id: r for r in reloaded.scalars().all()}
        return TeamHolidayResponse(
            message=f"Created {len(created)} holiday requests.",
            created_count=len(created),
            requests=[project_request(by_id[r.id], actor) for r in created],
        )
