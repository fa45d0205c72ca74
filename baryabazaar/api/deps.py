"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from baryabazaar.db.session import SessionLocal
from baryabazaar.obs import BALANCE_CONFLICT_COUNTER
from baryabazaar.services.errors import BalanceConcurrencyError
from baryabazaar.services.facade import Ledger


def get_db_session() -> Iterator[Session]:
    """Yield a database session; anything not committed by the route is rolled back."""

    session: Session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_ledger(session: Session = Depends(get_db_session)) -> Ledger:
    return Ledger(session)


def commit(session: Session) -> None:
    """Commit the request's unit of work."""

    try:
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        BALANCE_CONFLICT_COUNTER.labels(resource="commit").inc()
        raise BalanceConcurrencyError("Concurrent update detected; reload and retry") from exc


__all__ = ["commit", "get_db_session", "get_ledger"]
