"""Tests for capacity tunables: stored overrides, validation, admin endpoint."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.app_settings.models import AppSetting
from capacity_tracker.app_settings.service import CapacityTunables, SettingsService
from capacity_tracker.capacity.schemas import AllocationUpdate
from capacity_tracker.capacity.service import CapacityService
from capacity_tracker.common.constants import SettingKey
from capacity_tracker.common.exceptions import NotFoundException, ValidationException
from tests.conftest import WEEK, auth_headers


class TestLoadTunables:

    async def test_defaults_without_rows(self, db: AsyncSession):
        assert await SettingsService.load_tunables(db) == CapacityTunables()

    async def test_stored_values_win(self, db: AsyncSession):
        db.add(AppSetting(key="PACE_FACTOR", value="0.5"))
        db.add(AppSetting(key="WORKING_DAYS_PER_WEEK", value="4"))
        await db.flush()

        tunables = await SettingsService.load_tunables(db)

        assert tunables.pace_factor == 0.5
        assert tunables.working_days_per_week == 4
        assert tunables.hours_per_day == 8.0

    async def test_invalid_stored_value_is_ignored(self, db: AsyncSession, caplog):
        db.add(AppSetting(key="PACE_FACTOR", value="fast"))
        await db.flush()

        tunables = await SettingsService.load_tunables(db)

        assert tunables.pace_factor == 0.8
        assert "PACE_FACTOR" in caplog.text


class TestUpdateSetting:

    async def test_update_and_list(self, db: AsyncSession, admin):
        result = await SettingsService.update_setting(db, "pace_factor", 0.75, actor_id=admin.id)

        assert result.key == SettingKey.pace_factor
        assert result.value == 0.75
        assert result.source == "database"

        listed = {s.key: s for s in await SettingsService.list_settings(db)}
        assert listed[SettingKey.pace_factor].value == 0.75
        assert listed[SettingKey.working_hours_per_day].source == "environment"

    async def test_second_update_overwrites(self, db: AsyncSession, admin):
        await SettingsService.update_setting(db, "WORKING_HOURS_PER_DAY", 6, actor_id=admin.id)
        await SettingsService.update_setting(db, "WORKING_HOURS_PER_DAY", 7.5, actor_id=admin.id)

        tunables = await SettingsService.load_tunables(db)
        assert tunables.hours_per_day == 7.5

    @pytest.mark.parametrize(
        "key, value",
        [
            ("PACE_FACTOR", 0),
            ("PACE_FACTOR", 1.2),
            ("WORKING_HOURS_PER_DAY", 25),
            ("WORKING_DAYS_PER_WEEK", 4.5),
            ("WORKING_DAYS_PER_WEEK", 8),
        ],
    )
    async def test_out_of_range_rejected(self, db: AsyncSession, key, value):
        with pytest.raises(ValidationException):
            await SettingsService.update_setting(db, key, value)

    async def test_unknown_key(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await SettingsService.update_setting(db, "COFFEE_BREAKS", 3)

    async def test_hours_follow_the_pace_factor(self, db: AsyncSession, developer):
        await SettingsService.update_setting(db, "PACE_FACTOR", 0.5)

        result = await CapacityService.update_allocation(
            db, developer.id, WEEK, AllocationUpdate(ux=100),
        )

        assert result.max_hours == pytest.approx(20.0)


class TestSettingsEndpoints:

    async def test_any_user_can_read(self, client, developer):
        resp = await client.get("/api/v1/settings", headers=auth_headers(developer))

        assert resp.status_code == 200
        assert {s["key"] for s in resp.json()} == {
            "PACE_FACTOR", "WORKING_HOURS_PER_DAY", "WORKING_DAYS_PER_WEEK",
        }

    async def test_only_admin_can_write(self, client, manager, admin):
        denied = await client.put(
            "/api/v1/settings/PACE_FACTOR", json={"value": 0.7}, headers=auth_headers(manager),
        )
        allowed = await client.put(
            "/api/v1/settings/PACE_FACTOR", json={"value": 0.7}, headers=auth_headers(admin),
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["value"] == 0.7
