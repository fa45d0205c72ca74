"""ORM models package."""
from .audit_log import AuditLog, AuditLogImmutableError, AuditLogType
from .balance import UserBankBalance
from .base import Base, TimestampMixin, UTCDateTime, utcnow
from .platform import Bank, Platform
from .session_log import SessionLog
from .system_setting import SystemSettings
from .transaction import Transaction, TransactionStatus, TransactionType
from .user import User, UserRole

__all__ = [
    "AuditLog",
    "AuditLogImmutableError",
    "AuditLogType",
    "Bank",
    "Base",
    "Platform",
    "SessionLog",
    "SystemSettings",
    "TimestampMixin",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "UTCDateTime",
    "User",
    "UserBankBalance",
    "UserRole",
    "utcnow",
]
