"""Settings Pydantic v2 schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from capacity_tracker.common.constants import SettingKey


class SettingOut(BaseModel):
    """Effective value of one tunable and where it came from."""

    key: SettingKey
    value: Union[int, float]
    source: str = Field(..., description="'database' or 'environment'")
    updated_at: Optional[datetime] = None


class SettingUpdate(BaseModel):
    value: float = Field(..., description="New value for the tunable")
