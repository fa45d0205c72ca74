"""User ORM model."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Enum, Integer, String
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import Mapped, mapped_column, relationship

from baryabazaar.models.base import Base, TimestampMixin, UTCDateTime


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    ANALYST = "analyst"


class User(TimestampMixin, Base):
    """A trader or administrator who can operate assigned banks."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    hashed_password: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.ANALYST,
    )
    assigned_banks: Mapped[list[str]] = mapped_column(
        MutableList.as_mutable(JSON), nullable=False, default=list
    )
    is_logged_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    login_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    balances = relationship(
        "UserBankBalance",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="UserBankBalance.bank",
    )
    transactions = relationship("Transaction", back_populates="user")

    __mapper_args__ = {"version_id_col": lock_version}

    def balance_map(self) -> dict[str, Decimal]:
        return {row.bank: row.amount for row in self.balances}


__all__ = ["User", "UserRole"]
