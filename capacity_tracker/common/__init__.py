"""Common module — shared utilities for the capacity tracker."""

from capacity_tracker.common.audit import AuditTrail, create_audit_entry
from capacity_tracker.common.constants import (
    ALLOCATION_CATEGORIES,
    DATE_FORMAT,
    MAX_TOTAL_ALLOCATION,
    SettingKey,
    TimeOffStatus,
    TimeOffType,
    UserRole,
)
from capacity_tracker.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    StateConflictException,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ALLOCATION_CATEGORIES",
    "DATE_FORMAT",
    "MAX_TOTAL_ALLOCATION",
    "SettingKey",
    "TimeOffStatus",
    "TimeOffType",
    "UserRole",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "StateConflictException",
    "ValidationException",
    "register_exception_handlers",
]
