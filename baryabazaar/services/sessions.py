"""HR session log: login and logout times per user."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from baryabazaar.models import SessionLog, User, utcnow
from baryabazaar.services.ledger import Clock
from baryabazaar.services.periods import TimeWindow

logger = logging.getLogger(__name__)


class SessionLogService:
    def __init__(self, session: Session, *, clock: Clock = utcnow) -> None:
        self._session = session
        self._clock = clock

    def login(self, user: User) -> SessionLog:
        """Open a session; a session left open by a previous login is closed first."""

        now = self._clock()
        if user.is_logged_in:
            self._close_open_sessions(user.id, now)
        user.is_logged_in = True
        user.login_time = now
        entry = SessionLog(user_id=user.id, user_name=user.name, login_time=now)
        self._session.add(entry)
        self._session.flush()
        logger.info("user logged in", extra={"user_id": user.id})
        return entry

    def logout(self, user: User) -> SessionLog | None:
        now = self._clock()
        closed = self._close_open_sessions(user.id, now)
        user.is_logged_in = False
        user.login_time = None
        self._session.flush()
        logger.info("user logged out", extra={"user_id": user.id})
        return closed[-1] if closed else None

    def active_users(self) -> list[User]:
        return list(self._session.scalars(select(User).where(User.is_logged_in.is_(True)).order_by(User.name)))

    def list_logs(
        self,
        *,
        window: TimeWindow | None = None,
        user_id: str | None = None,
        limit: int | None = None,
    ) -> list[SessionLog]:
        stmt = select(SessionLog)
        if window is not None:
            stmt = stmt.where(SessionLog.login_time >= window.start, SessionLog.login_time < window.end)
        if user_id:
            stmt = stmt.where(SessionLog.user_id == user_id)
        stmt = stmt.order_by(SessionLog.login_time.desc())
        if limit:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt))

    def _close_open_sessions(self, user_id: str, now: datetime) -> list[SessionLog]:
        stmt = (
            select(SessionLog)
            .where(SessionLog.user_id == user_id, SessionLog.logout_time.is_(None))
            .order_by(SessionLog.login_time)
        )
        entries = list(self._session.scalars(stmt))
        for entry in entries:
            entry.logout_time = now
            entry.duration_seconds = max(0, int((now - entry.login_time).total_seconds()))
        return entries


__all__ = ["SessionLogService"]
