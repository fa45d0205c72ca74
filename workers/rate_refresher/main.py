"""Worker keeping the USDT/PHP reference rate fresh.

Fetched rates are written to the system settings row, where every API process
reads them for rate-deviation checks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from baryabazaar.core.config import get_settings
from baryabazaar.db.session import SessionLocal
from baryabazaar.services.events import EventBus, get_event_bus
from baryabazaar.services.exchange_rates import ExchangeRateService, ReferenceRate, run_rate_refresher
from baryabazaar.services.system_settings import SystemSettingsService
from baryabazaar.workers.observability import attach_worker_notifications, configure_worker

LOGGER = logging.getLogger(__name__)


def _interval_seconds(session_factory: Callable[[], Session] = SessionLocal) -> float:
    """Interval from the persisted settings row, falling back to configuration."""

    with session_factory() as session:
        interval_ms = SystemSettingsService(session, settings=get_settings()).get().rate_refresh_interval_ms
    return max(1.0, interval_ms / 1000)


def persist_rate(
    rate: ReferenceRate,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    bus: EventBus | None = None,
) -> bool:
    """Store ``rate`` for the API processes; True when the row was updated."""

    try:
        with session_factory() as session:
            written = SystemSettingsService(session).record_reference_rate(rate)
            session.commit()
    except SQLAlchemyError as exc:
        LOGGER.exception("storing reference rate failed")
        (bus or get_event_bus()).report_failure("rates", f"Storing the reference rate failed: {type(exc).__name__}")
        return False
    if written:
        LOGGER.info("reference rate stored", extra={"rate": str(rate.rate), "source": rate.source})
    return written


async def run() -> None:
    configure_worker("rate-refresher-worker")
    bus = get_event_bus()
    attach_worker_notifications(bus)
    service = ExchangeRateService.from_settings(bus=bus)
    interval = _interval_seconds()
    LOGGER.info("starting rate refresher", extra={"interval_seconds": interval})
    await run_rate_refresher(service, interval_seconds=interval, on_update=lambda rate: persist_rate(rate, bus=bus))


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        LOGGER.info("rate refresher stopped")


if __name__ == "__main__":
    main()
