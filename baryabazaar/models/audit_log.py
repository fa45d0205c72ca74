"""System audit log ORM model."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Enum, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from baryabazaar.models.base import Base, UTCDateTime, utcnow


class AuditLogType(str, enum.Enum):
    ROLE_CHANGE = "ROLE_CHANGE"
    BALANCE_ADJUSTMENT = "BALANCE_ADJUSTMENT"
    TRANSACTION_CREATED = "TRANSACTION_CREATED"
    TRANSACTION_EDIT = "TRANSACTION_EDIT"
    TRANSACTION_DELETE = "TRANSACTION_DELETE"
    USER_ADDED = "USER_ADDED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    PLATFORM_ADDED = "PLATFORM_ADDED"
    PLATFORM_DELETED = "PLATFORM_DELETED"
    BANK_ADDED = "BANK_ADDED"
    BANK_DELETED = "BANK_DELETED"
    CONFIG_UPDATED = "CONFIG_UPDATED"
    END_OF_DAY = "END_OF_DAY"


class AuditLogImmutableError(RuntimeError):
    """Raised when code attempts to change a written system log entry."""


class AuditLog(Base):
    """Append-only record of a ledger mutation."""

    __tablename__ = "system_logs"
    __table_args__ = (
        Index("ix_system_logs_created_at", "created_at"),
        Index("ix_system_logs_type", "type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type: Mapped[AuditLogType] = mapped_column(Enum(AuditLogType, name="audit_log_type"), nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    target: Mapped[str | None] = mapped_column(String(255))
    reason: Mapped[str | None] = mapped_column(Text)
    old_value: Mapped[Any | None] = mapped_column(JSON)
    new_value: Mapped[Any | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper: Any, connection: Any, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"System log entry '{target.id}' cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper: Any, connection: Any, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"System log entry '{target.id}' cannot be deleted")


__all__ = ["AuditLog", "AuditLogImmutableError", "AuditLogType"]
