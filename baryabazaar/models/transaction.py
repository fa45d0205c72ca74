"""Transaction ORM model."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from baryabazaar.models.base import Base, TimestampMixin, UTCDateTime, utcnow


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    INTERNAL_TRANSFER = "INTERNAL_TRANSFER"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    REJECTED = "rejected"


class Transaction(TimestampMixin, Base):
    """A single fiat/USDT exchange or internal movement."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_timestamp", "timestamp"),
        Index("ix_transactions_user_id", "user_id"),
        CheckConstraint("usdt_amount >= 0", name="ck_transactions_usdt_amount_non_negative"),
        CheckConstraint("php_amount >= 0", name="ck_transactions_php_amount_non_negative"),
        CheckConstraint("rate >= 0", name="ck_transactions_rate_non_negative"),
        CheckConstraint("fee >= 0", name="ck_transactions_fee_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, name="transaction_type"), nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    user_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    usdt_amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False, default=Decimal("0"))
    php_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    platform: Mapped[str | None] = mapped_column(String(128))
    bank: Mapped[str | None] = mapped_column(String(128))
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    note: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus, name="transaction_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user = relationship("User", back_populates="transactions")

    __mapper_args__ = {"version_id_col": lock_version}

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED


__all__ = ["Transaction", "TransactionStatus", "TransactionType"]
