"""Auth dependencies — JWT validation, capability enforcement.

Tokens are issued by the identity provider in front of this service. We only
verify the signature, check the token type and load the user the ``sub``
claim points to; the user's role always comes from the database row.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.common.access import capabilities_for
from capacity_tracker.common.exceptions import ForbiddenException
from capacity_tracker.config import settings
from capacity_tracker.database import get_db
from capacity_tracker.users.models import User


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate the JWT and return the authenticated User."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User account not found.")

    request.state.user_role = user.role
    return user


# ── Capability-based dependency ─────────────────────────────────────

def require_capability(flag: str, detail: str | None = None) -> Callable:
    """Return a dependency that checks a boolean ``RoleCapabilities`` flag.

    Collection-valued capabilities (approvable roles and the like) count as
    granted when non-empty.
    """

    async def _check(user: User = Depends(get_current_user)) -> User:
        if not getattr(capabilities_for(user.role), flag):
            raise ForbiddenException(
                detail=detail or f"Role '{user.role.value}' is not permitted to perform this action.",
            )
        return user

    return _check
