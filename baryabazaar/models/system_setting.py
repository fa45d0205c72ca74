"""Persisted system settings ORM model."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from baryabazaar.models.base import Base, TimestampMixin, UTCDateTime


class SystemSettings(TimestampMixin, Base):
    """Single-row operational settings editable by administrators."""

    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    daily_reset_time: Mapped[str] = mapped_column(String(5), nullable=False, default="01:00")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Asia/Manila")
    total_invested_funds: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    rate_refresh_interval_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=300_000)
    notification_poll_interval_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=30_000)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    large_transaction_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    low_balance_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Last rate fetched by a refresher; read by every API process for deviation checks.
    reference_rate: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    reference_rate_source: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reference_rate_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": lock_version}


__all__ = ["SystemSettings"]
