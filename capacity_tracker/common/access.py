"""Role capability table — the single source of truth for who may do what.

Every role-dependent decision (allocation edits, exports, time-off
visibility, approvals, team holidays, user management) is answered by
looking the actor's role up in ``ROLE_CAPABILITIES``. Handlers and services
call the predicates below instead of comparing role values themselves.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from capacity_tracker.common.constants import UserRole


@dataclass(frozen=True)
class RoleCapabilities:
    """What a single role is allowed to do."""

    is_capacity_subject: bool = False
    can_edit_allocations: bool = False
    can_export_reports: bool = False
    can_request_time_off: bool = True
    auto_approves_own_time_off: bool = False
    approvable_roles: frozenset[UserRole] = frozenset()
    holiday_target_roles: frozenset[UserRole] = frozenset()
    manageable_user_roles: frozenset[UserRole] = frozenset()
    can_delete_users: bool = False
    can_manage_settings: bool = False
    # May delete approved holidays that were created by an admin
    deletes_admin_holidays: bool = False
    # Human-readable description of the approval scope, used in error messages
    approval_scope_label: str = ""


_NON_ADMIN_ROLES = frozenset(r for r in UserRole if r != UserRole.admin)

ROLE_CAPABILITIES: dict[UserRole, RoleCapabilities] = {
    UserRole.admin: RoleCapabilities(
        can_edit_allocations=True,
        can_export_reports=True,
        approvable_roles=frozenset(UserRole),
        holiday_target_roles=_NON_ADMIN_ROLES,
        manageable_user_roles=frozenset(UserRole),
        can_delete_users=True,
        can_manage_settings=True,
        deletes_admin_holidays=True,
        approval_scope_label="non-admin users",
    ),
    UserRole.manager: RoleCapabilities(
        can_edit_allocations=True,
        can_export_reports=True,
        auto_approves_own_time_off=True,
        approvable_roles=frozenset({UserRole.developer}),
        holiday_target_roles=frozenset({UserRole.developer}),
        manageable_user_roles=frozenset({UserRole.developer}),
        approval_scope_label="developers",
    ),
    UserRole.qa_manager: RoleCapabilities(
        is_capacity_subject=True,
        auto_approves_own_time_off=True,
        approvable_roles=frozenset({UserRole.tester}),
        holiday_target_roles=frozenset({UserRole.tester}),
        manageable_user_roles=frozenset({UserRole.tester}),
        approval_scope_label="testers",
    ),
    UserRole.developer: RoleCapabilities(is_capacity_subject=True),
    UserRole.tester: RoleCapabilities(is_capacity_subject=True),
    UserRole.view_only: RoleCapabilities(
        can_export_reports=True,
        can_request_time_off=False,
    ),
}


def capabilities_for(role: UserRole) -> RoleCapabilities:
    return ROLE_CAPABILITIES[role]


# ── Capacity ────────────────────────────────────────────────────────

def capacity_subject_roles() -> list[UserRole]:
    """Roles whose members carry allocations and appear in team rollups."""
    return [role for role, caps in ROLE_CAPABILITIES.items() if caps.is_capacity_subject]


# ── Time off ────────────────────────────────────────────────────────

def is_approver(role: UserRole) -> bool:
    return bool(ROLE_CAPABILITIES[role].approvable_roles)


def can_approve(actor_role: UserRole, subject_role: UserRole) -> bool:
    return subject_role in ROLE_CAPABILITIES[actor_role].approvable_roles


def approval_denial_reason(actor_role: UserRole, subject_role: UserRole) -> str:
    """Explain why ``actor_role`` may not approve ``subject_role``."""
    caps = ROLE_CAPABILITIES[actor_role]
    if not caps.approvable_roles:
        return "Not authorized to approve time-off requests."
    # The tester tier belongs to the QA manager; point managers there.
    if subject_role == UserRole.tester and UserRole.tester not in caps.approvable_roles:
        return (
            f"Role '{actor_role.value}' cannot approve tester time-off requests. "
            "Contact the QA manager."
        )
    return f"Role '{actor_role.value}' can only approve time-off requests of {caps.approval_scope_label}."


def visible_time_off_roles(viewer_role: UserRole) -> Optional[frozenset[UserRole]]:
    """Roles whose time-off requests the viewer sees in addition to their own.

    ``None`` means every request is visible.
    """
    caps = ROLE_CAPABILITIES[viewer_role]
    if caps.approvable_roles == frozenset(UserRole):
        return None
    return caps.approvable_roles


def sees_time_off_type(
    viewer_id: uuid.UUID,
    viewer_role: UserRole,
    owner_id: uuid.UUID,
) -> bool:
    """Leave type is disclosed to admins and to the request owner only."""
    return viewer_role == UserRole.admin or viewer_id == owner_id


def can_target_for_holiday(creator_role: UserRole, target_role: UserRole) -> bool:
    return target_role in ROLE_CAPABILITIES[creator_role].holiday_target_roles


def can_delete_approved_time_off(
    actor_id: uuid.UUID,
    actor_role: UserRole,
    owner_id: uuid.UUID,
    is_admin_created: bool,
) -> bool:
    caps = ROLE_CAPABILITIES[actor_role]
    if caps.deletes_admin_holidays and is_admin_created:
        return True
    return caps.auto_approves_own_time_off and actor_id == owner_id


# ── Users ───────────────────────────────────────────────────────────

def can_manage_user(actor_role: UserRole, target_role: UserRole) -> bool:
    return target_role in ROLE_CAPABILITIES[actor_role].manageable_user_roles

