"""Settings router — read effective tunables, admin updates."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.app_settings.schemas import SettingOut, SettingUpdate
from capacity_tracker.app_settings.service import SettingsService
from capacity_tracker.auth.dependencies import get_current_user, require_capability
from capacity_tracker.database import get_db
from capacity_tracker.users.models import User

router = APIRouter(prefix="", tags=["settings"])


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=list[SettingOut])
async def list_settings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Effective capacity tunables (stored value or environment default)."""
    return await SettingsService.list_settings(db)


# ── PUT /{key} ──────────────────────────────────────────────────────

@router.put("/{key}", response_model=SettingOut)
async def update_setting(
    key: str,
    body: SettingUpdate,
    user: User = Depends(
        require_capability("can_manage_settings", "Only administrators can change settings.")
    ),
    db: AsyncSession = Depends(get_db),
):
    return await SettingsService.update_setting(db, key, body.value, actor_id=user.id)
