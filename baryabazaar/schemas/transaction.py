"""Pydantic schemas for transactions, trades and transfers."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from baryabazaar.models import TransactionStatus, TransactionType


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    user_id: str | None
    user_name: str
    usdt_amount: Decimal
    php_amount: Decimal
    platform: str | None
    bank: str | None
    rate: Decimal
    fee: Decimal
    note: str | None
    timestamp: datetime
    status: TransactionStatus
    lock_version: int


class TradeForm(BaseModel):
    """Raw trade form; values are checked by the validation layer, not here."""

    user_id: str | None = None
    bank: str | None = None
    platform: str | None = None
    rate: Decimal | str | None = None
    usdt_amount: Decimal | str | None = None
    php_amount: Decimal | str | None = None


class TradeRequest(TradeForm):
    type: TransactionType
    fee: Decimal = Field(default=Decimal("0"), ge=0)
    note: str | None = Field(default=None, max_length=1000)
    acknowledge_warnings: bool = False
    allow_negative: bool = False


class ValidationWarningRead(BaseModel):
    code: str
    message: str
    requires_acknowledgement: bool


class ValidationResponse(BaseModel):
    is_valid: bool
    errors: dict[str, str]
    warnings: list[ValidationWarningRead]


class TransactionUpdate(BaseModel):
    type: TransactionType | None = None
    user_id: str | None = None
    usdt_amount: Decimal | None = Field(default=None, ge=0)
    php_amount: Decimal | None = Field(default=None, ge=0)
    platform: str | None = None
    bank: str | None = None
    rate: Decimal | None = Field(default=None, ge=0)
    fee: Decimal | None = Field(default=None, ge=0)
    note: str | None = None
    status: TransactionStatus | None = None
    reason: str = Field(..., min_length=1)
    allow_negative: bool = False


class FiatTransferRequest(BaseModel):
    from_user_id: str
    from_bank: str
    to_user_id: str
    to_bank: str
    amount: Decimal = Field(..., gt=0)
    note: str | None = None


class UsdtTransferRequest(BaseModel):
    from_platform: str
    to_platform: str
    amount: Decimal = Field(..., gt=0)
    user_id: str | None = None
    note: str | None = None


__all__ = [
    "FiatTransferRequest",
    "TradeForm",
    "TradeRequest",
    "TransactionRead",
    "TransactionUpdate",
    "UsdtTransferRequest",
    "ValidationResponse",
    "ValidationWarningRead",
]
