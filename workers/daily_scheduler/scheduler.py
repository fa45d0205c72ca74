"""Scheduler that fires at every trading-day reset."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from baryabazaar.db.session import SessionLocal
from baryabazaar.services.balances import BalanceProjector, ReconciliationReport
from baryabazaar.services.periods import trading_day_start
from baryabazaar.services.system_settings import SystemSettingsService
from baryabazaar.workers.observability import configure_worker, worker_span

LOGGER = logging.getLogger(__name__)


def next_reset(reference: datetime, *, reset_time: time, tz: ZoneInfo) -> datetime:
    """Return the UTC instant of the next daily reset strictly after ``reference``."""

    current = trading_day_start(now=reference, reset_time=reset_time, tz=tz)
    local = current.astimezone(tz)
    following = datetime.combine(local.date() + timedelta(days=1), reset_time, tzinfo=tz)
    return following.astimezone(timezone.utc)


Schedule = Callable[[], tuple[time, ZoneInfo]]


def persisted_schedule(session_factory: Callable[[], Session] = SessionLocal) -> Schedule:
    """Read the reset time and timezone from the settings row on every call."""

    def load() -> tuple[time, ZoneInfo]:
        with session_factory() as session:
            service = SystemSettingsService(session)
            return service.reset_time(), service.zone()

    return load


async def run_daily_scheduler(
    callback: Callable[[], Awaitable[None]],
    *,
    schedule: Schedule,
    now_fn: Callable[[], datetime] | None = None,
    sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    iterations: int | None = None,
) -> None:
    """Invoke ``callback`` once per trading day, right after the reset.

    ``schedule`` is consulted before every wait, so a reset time changed by an
    administrator applies from the next cycle.
    """

    now_provider = now_fn or (lambda: datetime.now(timezone.utc))
    executed = 0

    while iterations is None or executed < iterations:
        reset_time, tz = schedule()
        now = now_provider()
        target = next_reset(now, reset_time=reset_time, tz=tz)
        delay = max((target - now).total_seconds(), 0.0)
        await sleep_fn(delay)
        await callback()
        executed += 1


async def run_reconciliation() -> ReconciliationReport:
    with worker_span("daily_scheduler.reconcile"):
        with SessionLocal() as session:  # type: ignore[attr-defined]
            report = BalanceProjector(session).reconcile()
    LOGGER.info("daily reconciliation complete", extra={"drift_count": len(report.drifts)})
    return report


async def run() -> None:
    configure_worker("daily-scheduler")

    async def callback() -> None:
        await run_reconciliation()

    await run_daily_scheduler(callback, schedule=persisted_schedule())


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        LOGGER.info("daily scheduler stopped")


if __name__ == "__main__":
    main()
