"""Historical capacity report schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from capacity_tracker.common.constants import UserRole


class HistoricalUserDetail(BaseModel):
    """Capacity of one user in one week, recomputed from time off."""

    user_id: uuid.UUID
    name: str
    email: str
    role: UserRole
    working_days: int
    max_hours: float
    total_allocation: float
    allocated_hours: float
    available_hours: float
    categories: dict[str, float] = Field(..., description="Category column → percentage")
    weekly_priority: Optional[str] = None


class CapacityTotals(BaseModel):
    unique_users: int = 0
    total_max_hours: float = 0.0
    total_allocated_hours: float = 0.0
    total_available_hours: float = 0.0
    average_utilization: float = Field(0.0, description="allocated / max * 100")


class HistoricalWeek(BaseModel):
    week_start: date
    users: list[HistoricalUserDetail]
    summary: CapacityTotals


class HistoricalSummary(CapacityTotals):
    total_weeks: int = 0


class HistoricalReport(BaseModel):
    start_week: date
    end_week: date
    include_notes: bool
    generated_at: datetime
    weeks: list[HistoricalWeek]
    summary: HistoricalSummary
