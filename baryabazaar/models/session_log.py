"""HR session log ORM model."""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from baryabazaar.models.base import Base, UTCDateTime, utcnow


class SessionLog(Base):
    """Login/logout pair for a user session."""

    __tablename__ = "hr_logs"
    __table_args__ = (Index("ix_hr_logs_login_time", "login_time"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    login_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    logout_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    duration_seconds: Mapped[int | None] = mapped_column(Integer)


__all__ = ["SessionLog"]
