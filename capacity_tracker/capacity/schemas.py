"""Capacity Pydantic v2 schemas — allocations, team rollups, ticket overview.

Naming conventions:
  - *Update / *Request  → request bodies (write)
  - *Out / *Response    → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from capacity_tracker.common.constants import WEEKLY_PRIORITY_MAX_LENGTH
from capacity_tracker.users.schemas import UserBrief


_percentage = dict(ge=0, le=100)


# ═════════════════════════════════════════════════════════════════════
# Allocation
# ═════════════════════════════════════════════════════════════════════


class AllocationUpdate(BaseModel):
    """Payload for upserting one user's allocation for one week."""

    backend_development: float = Field(0, **_percentage)
    frontend_development: float = Field(0, **_percentage)
    code_review: float = Field(0, **_percentage)
    release_management: float = Field(0, **_percentage)
    ux: float = Field(0, **_percentage)
    technical_analysis: float = Field(0, **_percentage)
    prod_support: float = Field(0, **_percentage)
    weekly_priority: Optional[str] = Field(None, max_length=WEEKLY_PRIORITY_MAX_LENGTH)


class AllocationOut(BaseModel):
    """Allocation row enriched with derived hours for its week."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    week_start: date
    backend_development: float
    frontend_development: float
    code_review: float
    release_management: float
    ux: float
    technical_analysis: float
    prod_support: float
    weekly_priority: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    user: Optional[UserBrief] = None

    # Computed fields, filled by the service, not from ORM
    total_allocation: float = 0.0
    working_days: int = 0
    max_working_days: int = 0
    max_hours: float = 0.0
    allocated_hours: float = 0.0
    available_hours: float = 0.0
    week_start_formatted: str = ""


class CopyWeekRequest(BaseModel):
    week_start: date = Field(..., description="Target week; normalized to its Monday")


class CopyWeekResponse(BaseModel):
    message: str
    copied_count: int
    allocations: list[AllocationOut]
    source_week: str
    target_week: str


# ═════════════════════════════════════════════════════════════════════
# Team overview
# ═════════════════════════════════════════════════════════════════════


class TeamWeekOverview(BaseModel):
    """Team-wide capacity rollup for a single week (hours)."""

    week_start: date
    total_team_members: int
    allocated_members: int
    total_capacity: float
    theoretical_max_capacity: float
    allocated_capacity: float
    availability_pct: float
    utilization_pct: float
    category_breakdown: dict[str, float]


# ═════════════════════════════════════════════════════════════════════
# Weekly-priority rollup
# ═════════════════════════════════════════════════════════════════════


class PriorityCapacity(BaseModel):
    priority: str
    category_hours: dict[str, float]
    total_hours: float
    user_count: int
    users: list[str]


class PriorityCapacityResponse(BaseModel):
    week_start: date
    total_allocations: int
    priorities: list[PriorityCapacity]


# ═════════════════════════════════════════════════════════════════════
# Ticket overview
# ═════════════════════════════════════════════════════════════════════


class TicketOut(BaseModel):
    key: str
    summary: str
    url: str
    issue_type: Optional[str] = None
    sprint: Optional[str] = None


class UserTickets(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    tickets: list[TicketOut]


class TicketOverviewResponse(BaseModel):
    enabled: bool
    message: Optional[str] = None
    last_refreshed: Optional[datetime] = None
    user_tickets: list[UserTickets] = Field(default_factory=list)
