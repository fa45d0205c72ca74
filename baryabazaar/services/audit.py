"""Append-only system log service."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from baryabazaar.models import AuditLog, AuditLogType, Transaction

logger = logging.getLogger(__name__)


def jsonable(value: Any) -> Any:
    """Convert decimals, enums and datetimes so the value fits a JSON column."""

    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(item) for item in value]
    return value


def snapshot_transaction(transaction: Transaction) -> dict[str, Any]:
    """Full copy of a transaction's business fields."""

    return jsonable(
        {
            "id": transaction.id,
            "type": transaction.type,
            "user_id": transaction.user_id,
            "user_name": transaction.user_name,
            "usdt_amount": transaction.usdt_amount,
            "php_amount": transaction.php_amount,
            "platform": transaction.platform,
            "bank": transaction.bank,
            "rate": transaction.rate,
            "fee": transaction.fee,
            "note": transaction.note,
            "timestamp": transaction.timestamp,
            "status": transaction.status,
        }
    )


@dataclass(slots=True, frozen=True)
class AuditLogFilters:
    type: AuditLogType | None = None
    actor: str | None = None
    target: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = None


class AuditLogService:
    """Writes and queries system log entries. ``record`` is the only write."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def record(
        self,
        *,
        type: AuditLogType,
        actor: str,
        target: str | None,
        reason: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
    ) -> AuditLog:
        entry = AuditLog(
            type=type,
            actor=actor,
            target=target,
            reason=reason,
            old_value=jsonable(old_value),
            new_value=jsonable(new_value),
        )
        self._session.add(entry)
        self._session.flush()
        logger.info(
            "system log entry recorded",
            extra={"log_type": type.value, "actor": actor, "target": target},
        )
        return entry

    def list_entries(self, filters: AuditLogFilters | None = None) -> list[AuditLog]:
        filters = filters or AuditLogFilters()
        stmt = select(AuditLog)
        if filters.type is not None:
            stmt = stmt.where(AuditLog.type == filters.type)
        if filters.actor:
            stmt = stmt.where(AuditLog.actor == filters.actor)
        if filters.target:
            stmt = stmt.where(AuditLog.target == filters.target)
        if filters.since is not None:
            stmt = stmt.where(AuditLog.created_at >= filters.since)
        if filters.until is not None:
            stmt = stmt.where(AuditLog.created_at < filters.until)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        if filters.limit:
            stmt = stmt.limit(filters.limit)
        return list(self._session.scalars(stmt))

    def count(self) -> int:
        return self._session.scalar(select(func.count()).select_from(AuditLog)) or 0


__all__ = ["AuditLogFilters", "AuditLogService", "jsonable", "snapshot_transaction"]
