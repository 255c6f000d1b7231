"""Time-off Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out / *Response    → response bodies (read)

Two read views exist for a request: ``TimeOffRequestOut`` (with ``type``) for
admins and the owner, ``TimeOffRequestRedactedOut`` for everybody else.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from capacity_tracker.common.constants import TimeOffStatus, TimeOffType
from capacity_tracker.users.schemas import UserBrief


# ═════════════════════════════════════════════════════════════════════
# Requests (write)
# ═════════════════════════════════════════════════════════════════════


class TimeOffCreate(BaseModel):
    """Payload for requesting time off."""

    start_date: date = Field(..., description="First day off (inclusive)")
    end_date: date = Field(..., description="Last day off (inclusive)")
    type: TimeOffType
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "TimeOffCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


class TimeOffStatusUpdate(BaseModel):
    """Approve or reject a pending request."""

    status: TimeOffStatus


class TimeOffCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class TeamHolidayCreate(BaseModel):
    """Approved holiday for several users at once."""

    user_ids: list[uuid.UUID] = Field(..., min_length=1)
    start_date: date
    end_date: date
    type: TimeOffType = TimeOffType.vacation
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "TeamHolidayCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Responses (read)
# ═════════════════════════════════════════════════════════════════════


class TimeOffRequestRedactedOut(BaseModel):
    """Request as seen by someone who may not know the leave type."""

    model_config = ConfigDict(from_attributes=True, extra="forbid")

    id: uuid.UUID
    user_id: uuid.UUID
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: TimeOffStatus
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    is_admin_created: bool = False
    created_at: datetime
    updated_at: datetime

    user: Optional[UserBrief] = None
    approver: Optional[UserBrief] = None
    canceller: Optional[UserBrief] = None
    creator: Optional[UserBrief] = None


class TimeOffRequestOut(TimeOffRequestRedactedOut):
    """Full view, including the leave type."""

    type: TimeOffType


TimeOffView = Union[TimeOffRequestOut, TimeOffRequestRedactedOut]


class TeamHolidayResponse(BaseModel):
    message: str
    created_count: int
    requests: list[TimeOffView]


class PendingCountOut(BaseModel):
    count: int
