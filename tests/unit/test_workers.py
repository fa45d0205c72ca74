from __future__ import annotations

import asyncio
from datetime import datetime, time, timezone
from decimal import Decimal
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from baryabazaar.core.config import Settings
from baryabazaar.models import AuditLog, AuditLogType
from baryabazaar.services.audit_archive import AuditArchiver
from baryabazaar.services.events import SYSTEM_ERROR, DomainEvent, EventBus
from baryabazaar.services.exchange_rates import SOURCE_COINGECKO, ReferenceRate
from baryabazaar.services.system_settings import SettingsUpdate, SystemSettingsService
from tests.conftest import FrozenClock
from workers.audit_archiver import run as run_audit_archiver
from workers.daily_scheduler import next_reset, persisted_schedule, run_daily_scheduler, run_reconciliation
from workers.rate_refresher import persist_rate

MANILA = ZoneInfo("Asia/Manila")
RESET = time(1, 0)


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("reference", "expected"),
    [
        (_utc(2024, 3, 18, 6, 0), _utc(2024, 3, 18, 17, 0)),
        (_utc(2024, 3, 17, 17, 0), _utc(2024, 3, 18, 17, 0)),
        (_utc(2024, 3, 17, 16, 30), _utc(2024, 3, 17, 17, 0)),
    ],
)
def test_next_reset_is_strictly_after_reference(reference: datetime, expected: datetime) -> None:
    assert next_reset(reference, reset_time=RESET, tz=MANILA) == expected


def test_daily_scheduler_waits_for_each_reset() -> None:
    clock = FrozenClock(_utc(2024, 3, 18, 6, 0))
    sleeps: list[float] = []
    fired: list[datetime] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.advance(seconds=seconds)

    async def callback() -> None:
        fired.append(clock.now)

    asyncio.run(
        run_daily_scheduler(
            callback, schedule=lambda: (RESET, MANILA), now_fn=clock, sleep_fn=fake_sleep, iterations=2
        )
    )

    assert sleeps == [11 * 3600, 24 * 3600]
    assert fired == [_utc(2024, 3, 18, 17, 0), _utc(2024, 3, 19, 17, 0)]


def test_daily_scheduler_picks_up_a_changed_reset_time(db_session) -> None:
    factory = sessionmaker(bind=db_session.get_bind())
    clock = FrozenClock(_utc(2024, 3, 18, 6, 0))
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.advance(seconds=seconds)

    async def callback() -> None:
        with factory() as session:
            SystemSettingsService(session).update(SettingsUpdate(daily_reset_time="02:00"), actor="admin@example.com")
            session.commit()

    asyncio.run(
        run_daily_scheduler(
            callback, schedule=persisted_schedule(factory), now_fn=clock, sleep_fn=fake_sleep, iterations=2
        )
    )

    assert sleeps == [11 * 3600, 25 * 3600]


def test_reconciliation_job_uses_worker_sessions(seeded: SimpleNamespace, db_session, monkeypatch) -> None:
    monkeypatch.setattr(
        "workers.daily_scheduler.scheduler.SessionLocal", sessionmaker(bind=db_session.get_bind())
    )

    report = asyncio.run(run_reconciliation())

    assert {(item.kind, item.key) for item in report.drifts} == {
        ("user_bank", f"{seeded.analyst.id}:BDO"),
        ("platform", "Binance"),
    }


def _log(target: str, created_at: datetime) -> AuditLog:
    return AuditLog(type=AuditLogType.BANK_ADDED, actor="root@example.com", target=target, created_at=created_at)


def test_audit_archiver_advances_watermark_after_success(db_session, s3_client) -> None:
    db_session.add_all([_log("BDO", _utc(2024, 3, 18, 1, 0)), _log("BPI", _utc(2024, 3, 18, 6, 30))])
    db_session.commit()
    clock = FrozenClock(_utc(2024, 3, 18, 6, 0))

    async def fake_sleep(seconds: float) -> None:
        clock.advance(hours=1)

    watermark = asyncio.run(
        run_audit_archiver(
            session_factory=sessionmaker(bind=db_session.get_bind()),
            archiver=AuditArchiver(settings=Settings(), s3_client_factory=lambda: s3_client),
            now_fn=clock,
            sleep_fn=fake_sleep,
            iterations=2,
        )
    )

    assert watermark == _utc(2024, 3, 18, 7, 0)
    body = s3_client.buckets["baryabazaar-audit-logs"]["audit/system-logs/2024/03/18/system-logs.jsonl"]
    assert len(body.decode("utf-8").splitlines()) == 2


def test_audit_archiver_retries_from_same_watermark(db_session, s3_client) -> None:
    db_session.add(_log("BDO", _utc(2024, 3, 18, 1, 0)))
    db_session.commit()
    s3_client.fail_puts = True
    bus = EventBus()
    failures: list[DomainEvent] = []
    bus.subscribe(SYSTEM_ERROR, failures.append)
    clock = FrozenClock(_utc(2024, 3, 18, 6, 0))

    async def fake_sleep(seconds: float) -> None:
        clock.advance(hours=1)

    watermark = asyncio.run(
        run_audit_archiver(
            session_factory=sessionmaker(bind=db_session.get_bind()),
            archiver=AuditArchiver(settings=Settings(), s3_client_factory=lambda: s3_client),
            now_fn=clock,
            sleep_fn=fake_sleep,
            iterations=2,
            bus=bus,
        )
    )

    assert watermark == _utc(2024, 3, 18, 0, 0)
    assert [item.payload["since"] for item in failures] == ["2024-03-18T00:00:00+00:00"] * 2
    assert {item.payload["component"] for item in failures} == {"audit_archiver"}


def test_refreshed_rate_is_stored_for_api_processes(db_session) -> None:
    factory = sessionmaker(bind=db_session.get_bind())
    fetched = ReferenceRate(Decimal("57.4"), SOURCE_COINGECKO, _utc(2024, 3, 18, 6, 0))

    assert persist_rate(fetched, session_factory=factory) is True
    assert persist_rate(fetched, session_factory=factory) is False

    with factory() as session:
        stored = SystemSettingsService(session).stored_reference_rate()
    assert stored is not None
    assert stored.rate == Decimal("57.4")
    assert stored.updated_at == fetched.updated_at


def test_rate_store_failure_is_reported(monkeypatch) -> None:
    bus = EventBus()
    failures: list[DomainEvent] = []
    bus.subscribe(SYSTEM_ERROR, failures.append)

    def unavailable() -> object:
        raise OperationalError("connect", {}, Exception("database unreachable"))

    fetched = ReferenceRate(Decimal("57.4"), SOURCE_COINGECKO, _utc(2024, 3, 18, 6, 0))

    assert persist_rate(fetched, session_factory=unavailable, bus=bus) is False
    assert [item.payload["component"] for item in failures] == ["rates"]
