"""User directory service — CRUD scoped by the actor's manageable roles."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.common import access
from capacity_tracker.common.audit import create_audit_entry
from capacity_tracker.common.constants import UserRole
from capacity_tracker.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from capacity_tracker.users.models import User
from capacity_tracker.users.schemas import UserCreate, UserOut, UserUpdate

logger = logging.getLogger(__name__)


def _snapshot(user: User) -> dict:
    return {"email": user.email, "name": user.name, "role": user.role.value}


class UserService:
    """Async user operations."""

    @staticmethod
    async def _get(db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))
        return user

    @staticmethod
    async def _ensure_email_free(
        db: AsyncSession,
        email: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(User.id).where(func.lower(User.email) == email.lower())
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        result = await db.execute(query)
        if result.scalar() is not None:
            raise ConflictError("email", email)

    @staticmethod
    def _ensure_can_manage(actor: User, role: UserRole) -> None:
        if not access.can_manage_user(actor.role, role):
            raise ForbiddenException(
                detail=f"Role '{actor.role.value}' cannot manage users with role '{role.value}'.",
            )

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def list_users(
        db: AsyncSession,
        *,
        role: Optional[UserRole] = None,
    ) -> list[UserOut]:
        query = select(User).order_by(User.name)
        if role is not None:
            query = query.where(User.role == role)
        result = await db.execute(query)
        return [UserOut.model_validate(u) for u in result.scalars().all()]

    @staticmethod
    async def get_user(db: AsyncSession, user_id: uuid.UUID) -> UserOut:
        return UserOut.model_validate(await UserService._get(db, user_id))

    # ── Writes ──────────────────────────────────────────────────────

    @staticmethod
    async def create_user(db: AsyncSession, actor: User, data: UserCreate) -> UserOut:
        UserService._ensure_can_manage(actor, data.role)
        await UserService._ensure_email_free(db, data.email)

        user = User(email=data.email.lower(), name=data.name, role=data.role)
        db.add(user)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor.id,
            new_values=_snapshot(user),
        )
        logger.info("User %s (%s) created by %s", user.email, user.role.value, actor.id)
        return UserOut.model_validate(user)

    @staticmethod
    async def update_user(
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
        data: UserUpdate,
    ) -> UserOut:
        user = await UserService._get(db, user_id)
        UserService._ensure_can_manage(actor, user.role)
        if data.role is not None:
            UserService._ensure_can_manage(actor, data.role)

        old = _snapshot(user)
        if data.email is not None and data.email.lower() != user.email:
            await UserService._ensure_email_free(db, data.email, exclude_id=user.id)
            user.email = data.email.lower()
        if data.name is not None:
            user.name = data.name
        if data.role is not None:
            user.role = data.role
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor.id,
            old_values=old,
            new_values=_snapshot(user),
        )
        return UserOut.model_validate(user)

    @staticmethod
    async def delete_user(db: AsyncSession, actor: User, user_id: uuid.UUID) -> None:
        """Delete a user; their allocations and time off go with them."""
        if user_id == actor.id:
            raise ValidationException({"user_id": ["You cannot delete your own account."]})
        user = await UserService._get(db, user_id)

        old = _snapshot(user)
        await db.delete(user)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="user",
            entity_id=user_id,
            actor_id=actor.id,
            old_values=old,
        )
        logger.info("User %s deleted by %s", old["email"], actor.id)
