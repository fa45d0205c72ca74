from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENABLE_TRACING", "false")

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from baryabazaar.api.deps import get_db_session, get_ledger
from baryabazaar.api.routes.auth import trading_sessions
from baryabazaar.main import app
from baryabazaar.models import Bank, Base, Platform, User, UserBankBalance, UserRole
from baryabazaar.services.events import EventBus
from baryabazaar.services.exchange_rates import ExchangeRateService
from baryabazaar.services.facade import Ledger

DEFAULT_PASSWORD = "changeme"
REFERENCE_RATE = Decimal("56.5")


class InMemoryS3Client:
    """Simple in-memory S3 stub used by the audit archiver during tests."""

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, bytes]] = {}
        self.fail_puts = False

    def head_bucket(self, *, Bucket: str) -> None:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, *, Bucket: str, **_: object) -> None:
        self._buckets.setdefault(Bucket, {})

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, BytesIO]:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "NoSuchBucket"}}, "GetObject")
        bucket = self._buckets[Bucket]
        if Key not in bucket:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "Not Found"}}, "GetObject")
        return {"Body": BytesIO(bucket[Key])}

    def put_object(
        self,
        *,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str | None = None,
        **_: object,
    ) -> dict[str, str]:
        if self.fail_puts:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject")
        bucket = self._buckets.setdefault(Bucket, {})
        bucket[Key] = Body.encode("utf-8") if isinstance(Body, str) else Body
        return {"ETag": "in-memory"}

    @property
    def buckets(self) -> dict[str, dict[str, bytes]]:
        return self._buckets


class FrozenClock:
    """Callable clock that tests can move forward explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def mock_http_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


DATABASE_URL = "sqlite+pysqlite:///:memory:"


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(autouse=True)
def _reset_refresh_tokens() -> Iterator[None]:
    trading_sessions.reset()
    yield
    trading_sessions.reset()


@pytest.fixture()
def s3_client() -> InMemoryS3Client:
    return InMemoryS3Client()


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture()
def clock() -> FrozenClock:
    # Monday 14:00 in Manila, after the 01:00 daily reset.
    return FrozenClock(datetime(2024, 3, 18, 6, 0, tzinfo=timezone.utc))


@pytest.fixture()
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def rate_service() -> ExchangeRateService:
    return ExchangeRateService(None, fallback_rate=REFERENCE_RATE)


@pytest.fixture()
def seeded(db_session: Session) -> SimpleNamespace:
    """Two banks, two platforms and one user per role, all assigned to both banks."""

    db_session.add_all([Bank(name="BDO"), Bank(name="BPI")])
    binance = Platform(name="Binance", balance=Decimal("1000"))
    okx = Platform(name="OKX", balance=Decimal("0"))
    db_session.add_all([binance, okx])

    users: dict[str, User] = {}
    for key, role in (
        ("root", UserRole.SUPER_ADMIN),
        ("admin", UserRole.ADMIN),
        ("supervisor", UserRole.SUPERVISOR),
        ("analyst", UserRole.ANALYST),
    ):
        user = User(name=key.title(), email=f"{key}@example.com", role=role, assigned_banks=["BDO", "BPI"])
        db_session.add(user)
        users[key] = user
    db_session.flush()
    users["analyst"].balances.append(UserBankBalance(bank="BDO", amount=Decimal("10000")))
    db_session.commit()
    return SimpleNamespace(platforms={"Binance": binance, "OKX": okx}, **users)


@pytest.fixture()
def ledger(
    db_session: Session,
    event_bus: EventBus,
    rate_service: ExchangeRateService,
    clock: FrozenClock,
) -> Ledger:
    return Ledger(db_session, bus=event_bus, rates=rate_service, clock=clock)


@pytest.fixture()
def client(
    db_session: Session,
    event_bus: EventBus,
    rate_service: ExchangeRateService,
) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    def override_get_ledger() -> Ledger:
        return Ledger(db_session, bus=event_bus, rates=rate_service)

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_ledger] = override_get_ledger

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_db_session, None)
    app.dependency_overrides.pop(get_ledger, None)


@pytest.fixture()
def login(client: TestClient) -> Callable[[str], dict[str, str]]:
    def _login(email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login


@pytest.fixture()
def auth_headers(seeded: SimpleNamespace, login: Callable[[str], dict[str, str]]) -> dict[str, str]:
    return login("admin@example.com")
