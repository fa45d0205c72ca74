"""Operator notifications for large trades, low balances and end-of-day runs."""
from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from baryabazaar.core.config import Settings, get_settings
from baryabazaar.models import SystemSettings
from baryabazaar.obs import NOTIFICATION_FAILURE_COUNTER
from baryabazaar.services.events import (
    BALANCE_CHANGED,
    END_OF_DAY_COMPLETED,
    SYSTEM_ERROR,
    TRANSACTION_CREATED,
    DomainEvent,
    EventBus,
)
from baryabazaar.services.system_settings import SETTINGS_ID

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    LARGE_TRANSACTION = "large_transaction"
    LOW_BALANCE = "low_balance"
    SYSTEM_ERROR = "system_error"
    EOD_REPORT = "eod_report"


@dataclass(slots=True, frozen=True)
class Notification:
    type: NotificationType
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "context": self.context,
            "created_at": self.created_at.isoformat(),
        }


class NotificationSink(Protocol):
    name: str

    def send(self, notification: Notification) -> None:
        """Deliver the notification or raise."""


class LoggingSink:
    name = "log"

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("baryabazaar.notifications")

    def send(self, notification: Notification) -> None:
        level = logging.INFO
        if notification.type in (NotificationType.LOW_BALANCE, NotificationType.SYSTEM_ERROR):
            level = logging.WARNING
        self._logger.log(level, notification.message, extra={"notification": notification.to_json()})


class WebhookSink:
    """Posts notifications as JSON to an HTTP endpoint."""

    name = "webhook"

    def __init__(self, url: str, *, client: httpx.Client | None = None, timeout: float = 5.0) -> None:
        self._url = url
        self._client = client or httpx.Client()
        self._owns_client = client is None
        self._timeout = timeout

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def send(self, notification: Notification) -> None:
        response = self._client.post(self._url, json=notification.to_json(), timeout=self._timeout)
        response.raise_for_status()


@dataclass(slots=True, frozen=True)
class AlertSwitches:
    enabled: bool = True
    large_transaction_alerts: bool = True
    low_balance_alerts: bool = True


def persisted_alert_switches(
    session_factory: Callable[[], Session],
    *,
    defaults: AlertSwitches,
    settings_id: int = SETTINGS_ID,
) -> Callable[[], AlertSwitches]:
    """Read the toggles administrators save on the system settings row.

    Every call opens a short session, so a change committed by any API process
    applies to the next event. Until a row exists, or while the database is
    unreachable, ``defaults`` apply.
    """

    def load() -> AlertSwitches:
        try:
            with session_factory() as session:
                record = session.get(SystemSettings, settings_id)
                if record is None:
                    return defaults
                return AlertSwitches(
                    enabled=record.notifications_enabled,
                    large_transaction_alerts=record.large_transaction_alerts,
                    low_balance_alerts=record.low_balance_alerts,
                )
        except SQLAlchemyError as exc:
            logger.warning("alert switches unavailable", extra={"error": str(exc)})
            return defaults

    return load


def _decimal(value: Any) -> Decimal | None:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class NotificationService:
    """Fans notifications out to sinks; a failing sink never affects the caller."""

    def __init__(
        self,
        sinks: Iterable[NotificationSink],
        *,
        enabled: bool = True,
        large_php_threshold: Decimal = Decimal("50000"),
        large_usdt_threshold: Decimal = Decimal("1000"),
        low_balance_threshold: Decimal = Decimal("1000"),
        large_transaction_alerts: bool = True,
        low_balance_alerts: bool = True,
        switches: Callable[[], AlertSwitches] | None = None,
    ) -> None:
        self._sinks = list(sinks)
        self._switches = switches
        self.enabled = enabled
        self.large_php_threshold = large_php_threshold
        self.large_usdt_threshold = large_usdt_threshold
        self.low_balance_threshold = low_balance_threshold
        self.large_transaction_alerts = large_transaction_alerts
        self.low_balance_alerts = low_balance_alerts

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        client: httpx.Client | None = None,
        switches: Callable[[], AlertSwitches] | None = None,
    ) -> NotificationService:
        settings = settings or get_settings()
        sinks: list[NotificationSink] = [LoggingSink()]
        if settings.notification_webhook_url:
            sinks.append(
                WebhookSink(
                    settings.notification_webhook_url,
                    client=client,
                    timeout=settings.notification_timeout_seconds,
                )
            )
        return cls(
            sinks,
            enabled=settings.notifications_enabled,
            large_php_threshold=settings.large_transaction_php_threshold,
            large_usdt_threshold=settings.large_transaction_usdt_threshold,
            low_balance_threshold=settings.low_balance_threshold,
            switches=switches,
        )

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    def current_switches(self) -> AlertSwitches:
        if self._switches is not None:
            return self._switches()
        return AlertSwitches(self.enabled, self.large_transaction_alerts, self.low_balance_alerts)

    def notify(self, notification: Notification, *, switches: AlertSwitches | None = None) -> int:
        """Send to every sink and return how many accepted it."""

        if not (switches or self.current_switches()).enabled:
            return 0
        delivered = 0
        for sink in self._sinks:
            try:
                sink.send(notification)
            except Exception as exc:
                NOTIFICATION_FAILURE_COUNTER.labels(sink=sink.name).inc()
                logger.error(
                    "notification delivery failed",
                    extra={"sink": sink.name, "notification_type": notification.type.value, "error": str(exc)},
                )
                continue
            delivered += 1
        return delivered

    def notify_system_error(self, message: str, **context: Any) -> int:
        return self.notify(Notification(NotificationType.SYSTEM_ERROR, message, context))

    def attach(self, bus: EventBus) -> Callable[[], None]:
        """Subscribe to ledger events; the returned callable detaches again."""

        handles = [
            bus.subscribe(TRANSACTION_CREATED, self._on_transaction_created),
            bus.subscribe(BALANCE_CHANGED, self._on_balance_changed),
            bus.subscribe(END_OF_DAY_COMPLETED, self._on_end_of_day),
            bus.subscribe(SYSTEM_ERROR, self._on_system_error),
        ]

        def detach() -> None:
            for handle in handles:
                handle()

        return detach

    def _on_transaction_created(self, event: DomainEvent) -> None:
        switches = self.current_switches()
        if not switches.large_transaction_alerts:
            return
        payload = event.payload
        php = _decimal(payload.get("php_amount")) or Decimal(0)
        usdt = _decimal(payload.get("usdt_amount")) or Decimal(0)
        if php <= self.large_php_threshold and usdt <= self.large_usdt_threshold:
            return
        message = (
            f"Large {payload.get('type')} by {payload.get('user_name') or 'unknown trader'}: "
            f"{usdt} USDT / {php} PHP"
        )
        self.notify(Notification(NotificationType.LARGE_TRANSACTION, message, dict(payload)), switches=switches)

    def _on_balance_changed(self, event: DomainEvent) -> None:
        switches = self.current_switches()
        if not switches.low_balance_alerts:
            return
        amount = _decimal(event.payload.get("amount"))
        if amount is None or amount >= self.low_balance_threshold:
            return
        if event.payload.get("kind") == "platform":
            message = f"Low balance on platform {event.payload.get('platform')}: {amount} USDT"
        else:
            message = f"Low balance in bank {event.payload.get('bank')}: {amount} PHP"
        self.notify(Notification(NotificationType.LOW_BALANCE, message, dict(event.payload)), switches=switches)

    def _on_end_of_day(self, event: DomainEvent) -> None:
        payload = event.payload
        message = (
            f"End of day: {payload.get('transaction_count', 0)} trades, "
            f"{payload.get('total_collected', '0')} PHP profit collected"
        )
        self.notify(Notification(NotificationType.EOD_REPORT, message, dict(payload)))

    def _on_system_error(self, event: DomainEvent) -> None:
        context = dict(event.payload)
        message = str(context.pop("message", "System error"))
        self.notify_system_error(message, **context)


__all__ = [
    "AlertSwitches",
    "LoggingSink",
    "Notification",
    "NotificationService",
    "NotificationSink",
    "NotificationType",
    "WebhookSink",
    "persisted_alert_switches",
]
