"""Shared observability helpers for worker processes."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator

from opentelemetry.trace import Span

from baryabazaar.core.config import get_settings
from baryabazaar.core.logging import configure_logging
from baryabazaar.db.session import SessionLocal
from baryabazaar.obs import initialise_tracing, ledger_span
from baryabazaar.services.events import EventBus
from baryabazaar.services.notifications import AlertSwitches, NotificationService, persisted_alert_switches


def configure_worker(service_name: str) -> None:
    """Configure logging and, when enabled, tracing for a worker service."""

    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.enable_tracing:
        initialise_tracing(
            service_name=service_name,
            endpoint=settings.otel_exporter_endpoint,
            instrument_logging=False,
        )


def attach_worker_notifications(bus: EventBus) -> Callable[[], None]:
    """Deliver the worker's ``system.error`` and other events to the configured sinks."""

    settings = get_settings()
    service = NotificationService.from_settings(
        settings,
        switches=persisted_alert_switches(
            SessionLocal, defaults=AlertSwitches(enabled=settings.notifications_enabled)
        ),
    )
    return service.attach(bus)


@contextmanager
def worker_span(name: str, **attributes: Any) -> Iterator[Span]:
    """Context manager that starts a worker span and attaches optional attributes."""

    with ledger_span(name, **attributes) as span:
        yield span


__all__ = ["attach_worker_notifications", "configure_worker", "worker_span"]
