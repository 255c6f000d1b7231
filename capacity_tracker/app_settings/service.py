"""Settings service — runtime tunables backed by the ``settings`` table.

Values stored in the database win over environment configuration. A stored
value that cannot be parsed is ignored (with a warning) and the environment
default is used instead.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.app_settings.models import AppSetting
from capacity_tracker.app_settings.schemas import SettingOut
from capacity_tracker.common.audit import create_audit_entry
from capacity_tracker.common.constants import SettingKey
from capacity_tracker.common.exceptions import NotFoundException, ValidationException
from capacity_tracker.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityTunables:
    """Parameters of every hours computation."""

    pace_factor: float = 0.8
    hours_per_day: float = 8.0
    working_days_per_week: int = 5

    @property
    def hours_per_working_day(self) -> float:
        """Productive hours in one working day."""
        return self.hours_per_day * self.pace_factor

    @classmethod
    def from_environment(cls) -> "CapacityTunables":
        return cls(
            pace_factor=float(settings.PACE_FACTOR),
            hours_per_day=float(settings.WORKING_HOURS_PER_DAY),
            working_days_per_week=int(settings.WORKING_DAYS_PER_WEEK),
        )


def _environment_value(key: SettingKey) -> float | int:
    return getattr(settings, key.value)


def _parse(key: SettingKey, raw: str) -> float | int:
    """Parse and range-check a tunable. Raises ValueError when invalid."""
    if key == SettingKey.working_days_per_week:
        number = float(raw)
        if not number.is_integer() or not 1 <= number <= 7:
            raise ValueError("Working days per week must be a whole number between 1 and 7.")
        return int(number)

    number = float(raw)
    if key == SettingKey.pace_factor and not 0 < number <= 1:
        raise ValueError("Pace factor must be greater than 0 and at most 1.")
    if key == SettingKey.working_hours_per_day and not 0 < number <= 24:
        raise ValueError("Working hours per day must be greater than 0 and at most 24.")
    return number


def _resolve_key(key: str) -> SettingKey:
    try:
        return SettingKey(key.upper())
    except ValueError:
        raise NotFoundException("Setting", key)


class SettingsService:
    """Async access to the tunables store."""

    @staticmethod
    async def _stored_rows(db: AsyncSession) -> dict[str, AppSetting]:
        result = await db.execute(
            select(AppSetting).where(AppSetting.key.in_([k.value for k in SettingKey]))
        )
        return {row.key: row for row in result.scalars().all()}

    @staticmethod
    async def load_tunables(db: AsyncSession) -> CapacityTunables:
        """Effective tunables: stored values over environment defaults."""
        rows = await SettingsService._stored_rows(db)
        values: dict[SettingKey, float | int] = {}
        for key in SettingKey:
            values[key] = _environment_value(key)
            row = rows.get(key.value)
            if row is None:
                continue
            try:
                values[key] = _parse(key, row.value)
            except ValueError:
                logger.warning(
                    "Ignoring invalid stored setting %s=%r; using %r",
                    key.value, row.value, values[key],
                )

        return CapacityTunables(
            pace_factor=float(values[SettingKey.pace_factor]),
            hours_per_day=float(values[SettingKey.working_hours_per_day]),
            working_days_per_week=int(values[SettingKey.working_days_per_week]),
        )

    @staticmethod
    async def list_settings(db: AsyncSession) -> list[SettingOut]:
        rows = await SettingsService._stored_rows(db)
        tunables = await SettingsService.load_tunables(db)
        effective = {
            SettingKey.pace_factor: tunables.pace_factor,
            SettingKey.working_hours_per_day: tunables.hours_per_day,
            SettingKey.working_days_per_week: tunables.working_days_per_week,
        }

        output: list[SettingOut] = []
        for key in SettingKey:
            row = rows.get(key.value)
            from_db = row is not None and effective[key] == _safe_parse(key, row.value)
            output.append(
                SettingOut(
                    key=key,
                    value=effective[key],
                    source="database" if from_db else "environment",
                    updated_at=row.updated_at if from_db else None,
                )
            )
        return output

    @staticmethod
    async def update_setting(
        db: AsyncSession,
        key: str,
        value: float,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SettingOut:
        """Validate and upsert a tunable."""
        setting_key = _resolve_key(key)
        try:
            parsed = _parse(setting_key, str(value))
        except ValueError as exc:
            raise ValidationException({"value": [str(exc)]})

        row = await db.get(AppSetting, setting_key.value)
        old_value = row.value if row else None
        if row is None:
            row = AppSetting(key=setting_key.value, value=str(parsed), updated_by=actor_id)
            db.add(row)
        else:
            row.value = str(parsed)
            row.updated_by = actor_id
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="setting",
            entity_id=uuid.uuid5(uuid.NAMESPACE_URL, setting_key.value),
            actor_id=actor_id,
            old_values={"value": old_value} if old_value is not None else None,
            new_values={"key": setting_key.value, "value": str(parsed)},
        )
        logger.info("Setting %s changed from %s to %s", setting_key.value, old_value, parsed)

        return SettingOut(
            key=setting_key,
            value=parsed,
            source="database",
            updated_at=row.updated_at,
        )


def _safe_parse(key: SettingKey, raw: str) -> Optional[float | int]:
    try:
        return _parse(key, raw)
    except ValueError:
        return None
