"""In-process domain event bus.

Services stage events on the SQLAlchemy session they write through; staged events
are delivered to subscribers only once that session commits and are discarded on
rollback.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Any

from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TRANSACTION_CREATED = "transaction.created"
TRANSACTION_UPDATED = "transaction.updated"
TRANSACTION_DELETED = "transaction.deleted"
BALANCE_CHANGED = "balance.changed"
END_OF_DAY_COMPLETED = "end_of_day.completed"
SYSTEM_ERROR = "system.error"


@dataclass(slots=True, frozen=True)
class DomainEvent:
    name: str
    payload: dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[DomainEvent], None]


class EventBus:
    """Observer registry; ``subscribe`` returns a callable that unsubscribes."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[str | None, Subscriber]] = []
        self._lock = Lock()

    def subscribe(self, name: str | None, callback: Subscriber) -> Callable[[], None]:
        entry = (name, callback)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            targets = [callback for name, callback in self._subscribers if name in (None, event.name)]
        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception("event subscriber failed", extra={"event": event.name})

    def report_failure(self, component: str, message: str, **context: Any) -> None:
        """Publish a ``system.error`` event straight away; failures have no commit to wait for."""

        self.publish(DomainEvent(SYSTEM_ERROR, {"component": component, "message": message, **context}))

    def stage(self, session: Session, event: DomainEvent) -> None:
        """Queue ``event`` for delivery after ``session`` commits."""

        key = f"staged_events:{id(self)}"
        if key not in session.info:
            session.info[key] = []
            sa_event.listen(session, "after_commit", lambda s: self._flush_staged(s, key))
            sa_event.listen(session, "after_rollback", lambda s: s.info.get(key, []).clear())
        session.info[key].append(event)

    def _flush_staged(self, session: Session, key: str) -> None:
        staged = list(session.info.get(key, []))
        session.info.get(key, []).clear()
        for event in staged:
            self.publish(event)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


@lru_cache
def get_event_bus() -> EventBus:
    """Return the process-wide event bus."""
    return EventBus()


__all__ = [
    "BALANCE_CHANGED",
    "DomainEvent",
    "END_OF_DAY_COMPLETED",
    "EventBus",
    "SYSTEM_ERROR",
    "Subscriber",
    "TRANSACTION_CREATED",
    "TRANSACTION_DELETED",
    "TRANSACTION_UPDATED",
    "get_event_bus",
]
