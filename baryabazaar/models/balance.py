"""Per-user bank balance ORM model."""
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from baryabazaar.models.base import Base, TimestampMixin


class UserBankBalance(TimestampMixin, Base):
    """Fiat held by one user in one bank."""

    __tablename__ = "user_bank_balances"
    __table_args__ = (UniqueConstraint("user_id", "bank", name="uq_user_bank_balances_user_bank"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    bank: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user = relationship("User", back_populates="balances")

    __mapper_args__ = {"version_id_col": lock_version}


__all__ = ["UserBankBalance"]
