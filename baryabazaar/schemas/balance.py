"""Pydantic schemas for balances and adjustments."""
from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class BankBalanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    bank: str
    amount: Decimal
    lock_version: int


class PlatformRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    balance: Decimal
    lock_version: int


class BalanceOverview(BaseModel):
    total_company_usdt: Decimal
    average_buy_rate: Decimal
    average_sell_rate: Decimal
    platforms: dict[str, Decimal]
    users: dict[str, dict[str, Decimal]]


class UserBalanceAdjustment(BaseModel):
    user_id: str
    bank: str
    amount: Decimal
    reason: str = Field(..., min_length=1)
    expected_version: int | None = None
    allow_negative: bool = False


class PlatformBalanceAdjustment(BaseModel):
    amount: Decimal
    reason: str = Field(..., min_length=1)
    expected_version: int | None = None
    allow_negative: bool = False


class BalanceDriftRead(BaseModel):
    kind: str
    key: str
    stored: Decimal
    replayed: Decimal
    difference: Decimal


class ReconciliationRead(BaseModel):
    is_consistent: bool
    drifts: list[BalanceDriftRead]


__all__ = [
    "BalanceDriftRead",
    "BalanceOverview",
    "BankBalanceRead",
    "PlatformBalanceAdjustment",
    "PlatformRead",
    "ReconciliationRead",
    "UserBalanceAdjustment",
]
