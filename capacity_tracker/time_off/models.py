"""Time-off ORM model: TimeOffRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from capacity_tracker.common.audit import utcnow
from capacity_tracker.common.constants import TimeOffStatus, TimeOffType
from capacity_tracker.database import Base
from capacity_tracker.users.models import User


class TimeOffRequest(Base):
    __tablename__ = "time_off_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_time_off_date_order"),
        sa.Index("ix_time_off_user_dates", "user_id", "start_date", "end_date"),
        sa.Index("ix_time_off_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    type: Mapped[TimeOffType] = mapped_column(
        sa.Enum(TimeOffType, name="time_off_type"), nullable=False,
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[TimeOffStatus] = mapped_column(
        sa.Enum(TimeOffStatus, name="time_off_status"),
        nullable=False,
        default=TimeOffStatus.pending,
        server_default="pending",
    )

    # Approval
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"),
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    # Cancellation
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"),
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Team holidays inserted on behalf of the owner
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"),
    )
    is_admin_created: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=sa.func.now(),
    )

    # Relationships
    user: Mapped[User] = relationship(foreign_keys=[user_id])
    approver: Mapped[Optional[User]] = relationship(foreign_keys=[approved_by])
    canceller: Mapped[Optional[User]] = relationship(foreign_keys=[cancelled_by])
    creator: Mapped[Optional[User]] = relationship(foreign_keys=[created_by])

    def __repr__(self) -> str:
        return (
            f"<TimeOffRequest {self.user_id} {self.start_date}..{self.end_date} "
            f"{self.status.value}>"
        )
