"""Exchange platform and bank registry ORM models."""
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from baryabazaar.models.base import Base, TimestampMixin


class Platform(TimestampMixin, Base):
    """USDT custody venue tracked by aggregate balance."""

    __tablename__ = "platforms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False, default=Decimal("0"))
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": lock_version}


class Bank(TimestampMixin, Base):
    """Named fiat channel available for assignment to users."""

    __tablename__ = "banks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)


__all__ = ["Bank", "Platform"]
