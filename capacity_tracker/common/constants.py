"""Enums and constants for the capacity tracker — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    admin = "admin"
    manager = "manager"
    developer = "developer"
    tester = "tester"
    qa_manager = "qa_manager"
    view_only = "view_only"


# ── Time off ────────────────────────────────────────────────────────

class TimeOffStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class TimeOffType(str, enum.Enum):
    vacation = "vacation"
    sick_leave = "sick_leave"
    personal = "personal"
    conference = "conference"
    other = "other"


# Statuses that block a new, overlapping request for the same user
ACTIVE_TIME_OFF_STATUSES = (TimeOffStatus.pending, TimeOffStatus.approved)


# ── Allocation categories ───────────────────────────────────────────

# Column name → human label (order is the display order everywhere)
ALLOCATION_CATEGORIES: dict[str, str] = {
    "backend_development": "Backend",
    "frontend_development": "Frontend",
    "code_review": "Code Review",
    "release_management": "Release Mgmt",
    "ux": "UX",
    "technical_analysis": "Technical Analysis",
    "prod_support": "Prod Support",
}

MAX_TOTAL_ALLOCATION = 100.0
WEEKLY_PRIORITY_MAX_LENGTH = 50


# ── Tunable keys (settings table) ───────────────────────────────────

class SettingKey(str, enum.Enum):
    pace_factor = "PACE_FACTOR"
    working_hours_per_day = "WORKING_HOURS_PER_DAY"
    working_days_per_week = "WORKING_DAYS_PER_WEEK"


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%Y-%m-%d"
DEFAULT_OVERVIEW_WEEKS = 4
MAX_OVERVIEW_WEEKS = 52
ADMIN_HOLIDAY_DEFAULT_REASON = "Admin-created holiday"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
