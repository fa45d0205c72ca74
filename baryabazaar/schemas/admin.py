"""Pydantic schemas for users, roles, reference data and system settings."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from baryabazaar.models import AuditLogType, UserRole


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: UserRole
    assigned_banks: list[str]
    is_logged_in: bool
    login_time: datetime | None


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=320)
    role: UserRole = UserRole.ANALYST
    assigned_banks: list[str] = Field(default_factory=list)
    password: str | None = Field(default=None, min_length=6)


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    reason: str | None = None


class BankAssignment(BaseModel):
    banks: list[str]
    reason: str | None = None


class RoleChange(BaseModel):
    role: UserRole
    reason: str | None = None


class RoleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: UserRole
    name: str
    level: int
    permissions: list[str]
    description: str


class NamedResourceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)


class PlatformCreate(NamedResourceCreate):
    initial_balance: Decimal = Field(default=Decimal("0"), ge=0)


class BankRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class SystemSettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    daily_reset_time: str
    timezone: str
    total_invested_funds: Decimal
    rate_refresh_interval_ms: int
    notification_poll_interval_ms: int
    notifications_enabled: bool
    large_transaction_alerts: bool
    low_balance_alerts: bool


class SystemSettingsUpdate(BaseModel):
    daily_reset_time: str | None = None
    timezone: str | None = None
    total_invested_funds: Decimal | None = None
    rate_refresh_interval_ms: int | None = None
    notification_poll_interval_ms: int | None = None
    notifications_enabled: bool | None = None
    large_transaction_alerts: bool | None = None
    low_balance_alerts: bool | None = None
    reason: str | None = None


class ProfitCollectionRequest(BaseModel):
    user_id: str
    bank: str
    amount: Decimal = Field(..., ge=0)


class EndOfDayRequest(BaseModel):
    collections: list[ProfitCollectionRequest]
    note: str | None = None


class UserProfitPreviewRead(BaseModel):
    user_id: str
    name: str
    assigned_banks: list[str]
    net_profit: Decimal
    gross_profit: Decimal
    buy_count: int
    sell_count: int


class EndOfDayReportRead(BaseModel):
    window_start: datetime
    window_end: datetime
    collections: list[ProfitCollectionRequest]
    total_collected: Decimal
    total_php: Decimal
    total_usdt: Decimal
    transaction_count: int


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: AuditLogType
    actor: str
    target: str | None
    reason: str | None
    old_value: Any | None
    new_value: Any | None
    created_at: datetime


class SessionLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None
    user_name: str
    login_time: datetime
    logout_time: datetime | None
    duration_seconds: int | None


__all__ = [
    "AuditLogRead",
    "BankAssignment",
    "BankRead",
    "EndOfDayReportRead",
    "EndOfDayRequest",
    "NamedResourceCreate",
    "PlatformCreate",
    "ProfitCollectionRequest",
    "RoleChange",
    "RoleRead",
    "SessionLogRead",
    "SystemSettingsRead",
    "SystemSettingsUpdate",
    "UserCreate",
    "UserProfitPreviewRead",
    "UserRead",
    "UserUpdate",
]
