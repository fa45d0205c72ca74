"""Persisted operational settings (reset time, timezone, alert toggles)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import time
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from baryabazaar.core.config import Settings, get_settings
from baryabazaar.models import AuditLogType, SystemSettings
from baryabazaar.services.audit import AuditLogService
from baryabazaar.services.errors import InvalidSettingError
from baryabazaar.services.exchange_rates import SOURCE_COINGECKO, ReferenceRate
from baryabazaar.services.periods import parse_reset_time
from baryabazaar.services.rates import ZERO, quantize_php, to_decimal

logger = logging.getLogger(__name__)

SETTINGS_ID = 1
MIN_INTERVAL_MS = 1_000


@dataclass(slots=True, frozen=True)
class SettingsUpdate:
    daily_reset_time: str | None = None
    timezone: str | None = None
    total_invested_funds: Decimal | None = None
    rate_refresh_interval_ms: int | None = None
    notification_poll_interval_ms: int | None = None
    notifications_enabled: bool | None = None
    large_transaction_alerts: bool | None = None
    low_balance_alerts: bool | None = None

    def changes(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self) if getattr(self, item.name) is not None}


def _snapshot(record: SystemSettings) -> dict[str, Any]:
    return {
        "daily_reset_time": record.daily_reset_time,
        "timezone": record.timezone,
        "total_invested_funds": record.total_invested_funds,
        "rate_refresh_interval_ms": record.rate_refresh_interval_ms,
        "notification_poll_interval_ms": record.notification_poll_interval_ms,
        "notifications_enabled": record.notifications_enabled,
        "large_transaction_alerts": record.large_transaction_alerts,
        "low_balance_alerts": record.low_balance_alerts,
    }


def load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidSettingError(f"Unknown timezone '{name}'") from exc


class SystemSettingsService:
    def __init__(
        self,
        session: Session,
        *,
        audit: AuditLogService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._audit = audit or AuditLogService(session)
        self._settings = settings or get_settings()
        self._defaults: SystemSettings | None = None

    def get(self) -> SystemSettings:
        """Return the stored row, or configuration defaults when none is stored yet.

        Reading never writes; the defaults become a row on the first update or seed.
        """

        record = self._session.get(SystemSettings, SETTINGS_ID)
        if record is not None:
            return record
        if self._defaults is None:
            self._defaults = SystemSettings(
                id=SETTINGS_ID,
                daily_reset_time=self._settings.daily_reset_time,
                timezone=self._settings.timezone,
                total_invested_funds=quantize_php(self._settings.total_invested_funds),
                rate_refresh_interval_ms=self._settings.rate_refresh_interval_ms,
                notification_poll_interval_ms=self._settings.notification_poll_interval_ms,
                notifications_enabled=self._settings.notifications_enabled,
                large_transaction_alerts=True,
                low_balance_alerts=True,
            )
        return self._defaults

    def seed(self) -> SystemSettings:
        """Persist the configuration defaults if no row is stored."""

        record = self.get()
        if record not in self._session:
            self._session.add(record)
            self._session.flush()
        return record

    def stored_reference_rate(self) -> ReferenceRate | None:
        record = self.get()
        if record.reference_rate is None or record.reference_rate_updated_at is None:
            return None
        return ReferenceRate(
            to_decimal(record.reference_rate),
            record.reference_rate_source or SOURCE_COINGECKO,
            record.reference_rate_updated_at,
        )

    def record_reference_rate(self, rate: ReferenceRate) -> bool:
        """Store ``rate`` unless a newer one is already stored; True when written."""

        stored = self.stored_reference_rate()
        if stored is not None and stored.updated_at >= rate.updated_at:
            return False
        record = self.seed()
        record.reference_rate = rate.rate
        record.reference_rate_source = rate.source
        record.reference_rate_updated_at = rate.updated_at
        self._session.flush()
        return True

    def reset_time(self) -> time:
        return parse_reset_time(self.get().daily_reset_time)

    def zone(self) -> ZoneInfo:
        return load_zone(self.get().timezone)

    def update(self, update: SettingsUpdate, *, actor: str, reason: str | None = None) -> SystemSettings:
        changes = update.changes()
        if "daily_reset_time" in changes:
            try:
                parsed = parse_reset_time(changes["daily_reset_time"])
            except ValueError as exc:
                raise InvalidSettingError(str(exc)) from exc
            changes["daily_reset_time"] = parsed.strftime("%H:%M")
        if "timezone" in changes:
            load_zone(changes["timezone"])
        if "total_invested_funds" in changes:
            funds = to_decimal(changes["total_invested_funds"])
            if funds < ZERO:
                raise InvalidSettingError("Total invested funds must not be negative")
            changes["total_invested_funds"] = quantize_php(funds)
        for name in ("rate_refresh_interval_ms", "notification_poll_interval_ms"):
            if name in changes and changes[name] < MIN_INTERVAL_MS:
                raise InvalidSettingError(f"{name} must be at least {MIN_INTERVAL_MS}")

        record = self.seed()
        old = _snapshot(record)
        for name, value in changes.items():
            setattr(record, name, value)
        self._session.flush()
        self._audit.record(
            type=AuditLogType.CONFIG_UPDATED,
            actor=actor,
            target="system_settings",
            reason=reason,
            old_value=old,
            new_value=_snapshot(record),
        )
        logger.info("system settings updated", extra={"fields": sorted(changes)})
        return record


__all__ = ["SETTINGS_ID", "SettingsUpdate", "SystemSettingsService", "load_zone"]
