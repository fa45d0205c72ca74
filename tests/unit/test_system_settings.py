from __future__ import annotations

from datetime import time
from decimal import Decimal

import pytest
from sqlalchemy import select

from baryabazaar.core.config import Settings
from baryabazaar.models import AuditLog, AuditLogType, SystemSettings
from baryabazaar.services.errors import InvalidSettingError
from baryabazaar.services.facade import Ledger
from baryabazaar.services.system_settings import SETTINGS_ID, SettingsUpdate, SystemSettingsService


@pytest.fixture()
def service(db_session) -> SystemSettingsService:
    return SystemSettingsService(db_session, settings=Settings(total_invested_funds=Decimal("250000")))


def test_reads_fall_back_to_configuration_without_writing(service: SystemSettingsService, db_session) -> None:
    record = service.get()

    assert record.daily_reset_time == "01:00"
    assert record.timezone == "Asia/Manila"
    assert record.total_invested_funds == Decimal("250000.00")
    assert service.get() is record
    assert service.reset_time() == time(1, 0)
    assert str(service.zone()) == "Asia/Manila"
    assert db_session.get(SystemSettings, SETTINGS_ID) is None
    assert not db_session.new


def test_seed_persists_configuration_defaults(service: SystemSettingsService, db_session) -> None:
    record = service.seed()

    assert db_session.get(SystemSettings, SETTINGS_ID) is record
    assert service.seed() is record
    assert record.large_transaction_alerts is True


def test_building_a_ledger_does_not_write(db_session, rate_service) -> None:
    Ledger(db_session, rates=rate_service)

    assert not db_session.new
    assert db_session.get(SystemSettings, SETTINGS_ID) is None


def test_update_normalises_and_audits(service: SystemSettingsService, db_session) -> None:
    record = service.update(
        SettingsUpdate(daily_reset_time="7:05", total_invested_funds=Decimal("300000.456"), low_balance_alerts=False),
        actor="root@example.com",
        reason="new desk hours",
    )

    assert record.daily_reset_time == "07:05"
    assert record.total_invested_funds == Decimal("300000.46")
    assert record.low_balance_alerts is False
    assert record.timezone == "Asia/Manila"

    entry = db_session.scalars(select(AuditLog).where(AuditLog.type == AuditLogType.CONFIG_UPDATED)).one()
    assert entry.old_value["daily_reset_time"] == "01:00"
    assert entry.new_value["daily_reset_time"] == "07:05"
    assert entry.reason == "new desk hours"


@pytest.mark.parametrize(
    "update",
    [
        SettingsUpdate(daily_reset_time="25:00"),
        SettingsUpdate(daily_reset_time="noon"),
        SettingsUpdate(timezone="Mars/Olympus_Mons"),
        SettingsUpdate(total_invested_funds=Decimal("-1")),
        SettingsUpdate(rate_refresh_interval_ms=999),
        SettingsUpdate(notification_poll_interval_ms=0),
    ],
)
def test_invalid_values_are_rejected(service: SystemSettingsService, update: SettingsUpdate) -> None:
    with pytest.raises(InvalidSettingError):
        service.update(update, actor="root@example.com")


def test_empty_update_keeps_current_values(service: SystemSettingsService) -> None:
    record = service.update(SettingsUpdate(), actor="root@example.com")

    assert record.daily_reset_time == "01:00"
    assert SettingsUpdate().changes() == {}
