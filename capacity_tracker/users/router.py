"""Users router — directory reads for everyone, writes for user managers."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.auth.dependencies import get_current_user, require_capability
from capacity_tracker.common.constants import UserRole
from capacity_tracker.database import get_db
from capacity_tracker.users.models import User
from capacity_tracker.users.schemas import UserCreate, UserOut, UserUpdate
from capacity_tracker.users.service import UserService

router = APIRouter(prefix="", tags=["users"])

_require_user_manager = require_capability(
    "manageable_user_roles", "Not authorized to manage users.",
)


# ── GET /me ─────────────────────────────────────────────────────────

@router.get("/me", response_model=UserOut)
async def get_me(user: User = Depends(get_current_user)):
    return user


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=list[UserOut])
async def list_users(
    role: Optional[UserRole] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.list_users(db, role=role)


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.get_user(db, user_id)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=UserOut, status_code=201)
async def create_user(
    body: UserCreate,
    user: User = Depends(_require_user_manager),
    db: AsyncSession = Depends(get_db),
):
    """Create a user whose role the caller may manage. 409 on duplicate email."""
    return await UserService.create_user(db, user, body)


# ── PUT /{id} ───────────────────────────────────────────────────────

@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    user: User = Depends(_require_user_manager),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.update_user(db, user, user_id, body)


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: uuid.UUID,
    user: User = Depends(
        require_capability("can_delete_users", "Only administrators can delete users.")
    ),
    db: AsyncSession = Depends(get_db),
):
    await UserService.delete_user(db, user, user_id)
    return Response(status_code=204)
