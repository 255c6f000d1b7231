"""Capacity ORM model: Allocation (one row per user per week)."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from capacity_tracker.common.audit import utcnow
from capacity_tracker.common.constants import (
    ALLOCATION_CATEGORIES,
    WEEKLY_PRIORITY_MAX_LENGTH,
)
from capacity_tracker.database import Base
from capacity_tracker.users.models import User


def _percentage_column() -> Mapped[float]:
    return mapped_column(sa.Float, nullable=False, default=0.0, server_default="0")


class Allocation(Base):
    __tablename__ = "allocations"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "week_start", name="uq_allocation_user_week"),
        sa.Index("ix_allocations_week_start", "week_start"),
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
    week_start: Mapped[date] = mapped_column(sa.Date, nullable=False)

    backend_development: Mapped[float] = _percentage_column()
    frontend_development: Mapped[float] = _percentage_column()
    code_review: Mapped[float] = _percentage_column()
    release_management: Mapped[float] = _percentage_column()
    ux: Mapped[float] = _percentage_column()
    technical_analysis: Mapped[float] = _percentage_column()
    prod_support: Mapped[float] = _percentage_column()

    weekly_priority: Mapped[Optional[str]] = mapped_column(
        sa.String(WEEKLY_PRIORITY_MAX_LENGTH),
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
    user: Mapped[User] = relationship()

    @property
    def category_values(self) -> dict[str, float]:
        return {name: getattr(self, name) or 0.0 for name in ALLOCATION_CATEGORIES}

    @property
    def total_allocation(self) -> float:
        return sum(self.category_values.values())

    def __repr__(self) -> str:
        return f"<Allocation {self.user_id} {self.week_start} {self.total_allocation}%>"
