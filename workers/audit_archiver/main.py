"""Asynchronous worker copying the system log to the S3 archive."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from baryabazaar.core.config import get_settings
from baryabazaar.db.session import SessionLocal
from baryabazaar.services.audit import AuditLogService
from baryabazaar.services.audit_archive import ArchiveResult, AuditArchiver
from baryabazaar.services.events import EventBus, get_event_bus
from baryabazaar.services.periods import TimeWindow
from baryabazaar.workers.observability import attach_worker_notifications, configure_worker, worker_span

LOGGER = logging.getLogger(__name__)


def archive_once(session: Session, archiver: AuditArchiver, *, since: datetime, now: datetime) -> ArchiveResult:
    """Archive entries created in ``[since, now)``."""

    with worker_span("audit_archiver.cycle", since=since.isoformat()):
        return archiver.archive_window(AuditLogService(session), TimeWindow(since, now))


async def run(
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    archiver: AuditArchiver | None = None,
    now_fn: Callable[[], datetime] | None = None,
    sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    iterations: int | None = None,
    bus: EventBus | None = None,
) -> datetime:
    """Archive new entries every interval; a failed cycle is retried from the same watermark."""

    settings = get_settings()
    bus = bus or get_event_bus()
    archiver = archiver or AuditArchiver(settings=settings)
    now_provider = now_fn or (lambda: datetime.now(tz=UTC))
    interval = max(60, settings.audit_archive_interval_seconds)
    watermark = now_provider().replace(hour=0, minute=0, second=0, microsecond=0)
    LOGGER.info("starting audit archiver", extra={"interval_seconds": interval})

    executed = 0
    while iterations is None or executed < iterations:
        now = now_provider()
        with session_factory() as session:
            result = archive_once(session, archiver, since=watermark, now=now)
        if result.succeeded:
            watermark = now
        else:
            bus.report_failure(
                "audit_archiver",
                f"Audit archive write failed; retrying from {watermark.isoformat()}",
                since=watermark.isoformat(),
            )
        executed += 1
        if iterations is not None and executed >= iterations:
            break
        await sleep_fn(interval)
    return watermark


def main() -> None:
    configure_worker("audit-archiver-worker")
    attach_worker_notifications(get_event_bus())
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        LOGGER.info("audit archiver stopped")


if __name__ == "__main__":
    main()
