"""Trade submission, transaction history and internal transfer endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from baryabazaar.api.deps import commit, get_ledger
from baryabazaar.api.routes.auth import AuthenticatedUser, get_current_user, require_permission
from baryabazaar.models import Transaction, TransactionStatus, TransactionType
from baryabazaar.schemas.transaction import (
    FiatTransferRequest,
    TradeForm,
    TradeRequest,
    TransactionRead,
    TransactionUpdate,
    UsdtTransferRequest,
    ValidationResponse,
    ValidationWarningRead,
)
from baryabazaar.services.facade import Ledger
from baryabazaar.services.ledger import TransactionFilters, TransactionInput, TransactionPatch
from baryabazaar.services.periods import Period, period_window
from baryabazaar.services.roles import can_manage_role, has_any_permission
from baryabazaar.services.transfers import FiatTransfer, UsdtTransfer
from baryabazaar.services.validation import ValidationResult

router = APIRouter()

TRADE_PERMISSIONS = ("trade_own_account", "trade_assigned_users", "trade_all_users")


def ensure_can_trade_for(user: AuthenticatedUser, target_user_id: str | None, ledger: Ledger) -> None:
    if user.can("trade_all_users"):
        return
    if target_user_id == user.id and has_any_permission(user.role, TRADE_PERMISSIONS):
        return
    if target_user_id and user.can("trade_assigned_users"):
        target = ledger.registry.get_user(target_user_id)
        if target is not None and can_manage_role(user.role, target.role):
            return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to trade for this user")


def ensure_can_override(user: AuthenticatedUser, allow_negative: bool) -> None:
    if allow_negative and not user.can("adjust_balances"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Negative balance overrides require the adjust_balances permission",
        )


def _validation_response(result: ValidationResult) -> ValidationResponse:
    return ValidationResponse(
        is_valid=result.is_valid,
        errors=result.errors,
        warnings=[
            ValidationWarningRead(
                code=item.code,
                message=item.message,
                requires_acknowledgement=item.requires_acknowledgement,
            )
            for item in result.warnings
        ],
    )


def _can_edit(user: AuthenticatedUser, transaction: Transaction) -> bool:
    if user.can("edit_transactions"):
        return True
    return user.can("edit_own_transactions") and transaction.user_id == user.id


@router.get("/transactions", response_model=list[TransactionRead])
def list_transactions(
    type: TransactionType | None = None,
    user_id: str | None = None,
    platform: str | None = None,
    bank: str | None = None,
    status_filter: TransactionStatus | None = Query(default=None, alias="status"),
    period: Period | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = Query(default=None, ge=1, le=1000),
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[TransactionRead]:
    if not user.can("view_all_data"):
        if user_id not in (None, user.id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        user_id = user.id
    since, until = start, end
    if period is not None:
        try:
            window = period_window(period, now=ledger.clock(), tz=ledger.tz, start=start, end=end)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        since, until = window.start, window.end
    filters = TransactionFilters(
        type=type,
        user_id=user_id,
        platform=platform,
        bank=bank,
        status=status_filter,
        since=since,
        until=until,
        limit=limit,
    )
    return [TransactionRead.model_validate(item) for item in ledger.transactions.list_transactions(filters)]


@router.get("/transactions/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: str,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TransactionRead:
    transaction = ledger.transactions.get_transaction(transaction_id)
    if transaction is None or (not user.can("view_all_data") and transaction.user_id != user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return TransactionRead.model_validate(transaction)


@router.post("/trades/validate", response_model=ValidationResponse)
def validate_trade(
    payload: TradeForm,
    type: TransactionType = Query(...),
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission(*TRADE_PERMISSIONS)),
) -> ValidationResponse:
    result = ledger.validate_trade(payload.model_dump(), type)
    return _validation_response(result)


@router.post("/trades", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def submit_trade(
    payload: TradeRequest,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission(*TRADE_PERMISSIONS)),
) -> TransactionRead:
    if payload.type is TransactionType.INTERNAL_TRANSFER:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Internal transfers are submitted through /transfers",
        )
    ensure_can_trade_for(user, payload.user_id, ledger)
    ensure_can_override(user, payload.allow_negative)

    result = ledger.validate_trade(payload.model_dump(), payload.type)
    if not result.is_valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=_validation_response(result).model_dump(),
        )
    if result.requires_acknowledgement and not payload.acknowledge_warnings:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_validation_response(result).model_dump(),
        )

    transaction = ledger.transactions.add_transaction(
        TransactionInput(
            type=payload.type,
            user_id=payload.user_id,
            usdt_amount=Decimal(str(payload.usdt_amount)),
            php_amount=Decimal(str(payload.php_amount)),
            platform=payload.platform,
            bank=payload.bank,
            rate=Decimal(str(payload.rate)),
            fee=payload.fee,
            note=payload.note,
        ),
        user.email,
        allow_negative=payload.allow_negative,
    )
    commit(ledger.session)
    return TransactionRead.model_validate(transaction)


@router.patch("/transactions/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("edit_transactions", "edit_own_transactions")),
) -> TransactionRead:
    existing = ledger.transactions.get_transaction(transaction_id)
    if existing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    if not _can_edit(user, existing):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    ensure_can_override(user, payload.allow_negative)

    changes = payload.model_dump(exclude_unset=True, exclude={"reason", "allow_negative"})
    transaction = ledger.transactions.update_transaction(
        transaction_id,
        TransactionPatch(**changes),
        payload.reason,
        user.email,
        allow_negative=payload.allow_negative,
    )
    if transaction is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    commit(ledger.session)
    return TransactionRead.model_validate(transaction)


@router.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_transaction(
    transaction_id: str,
    reason: str = Query(..., min_length=1),
    allow_negative: bool = False,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("delete_transactions")),
) -> None:
    ensure_can_override(user, allow_negative)
    deleted = ledger.transactions.delete_transaction(
        transaction_id, reason, user.email, allow_negative=allow_negative
    )
    if deleted is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    commit(ledger.session)


@router.post("/transfers/fiat", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def transfer_fiat(
    payload: FiatTransferRequest,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("internal_transfers")),
) -> TransactionRead:
    transaction = ledger.transfers.transfer_fiat(
        FiatTransfer(
            from_user_id=payload.from_user_id,
            from_bank=payload.from_bank,
            to_user_id=payload.to_user_id,
            to_bank=payload.to_bank,
            amount=payload.amount,
            note=payload.note,
        ),
        user.email,
    )
    commit(ledger.session)
    return TransactionRead.model_validate(transaction)


@router.post("/transfers/usdt", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def transfer_usdt(
    payload: UsdtTransferRequest,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("internal_transfers")),
) -> TransactionRead:
    transaction = ledger.transfers.transfer_usdt(
        UsdtTransfer(
            from_platform=payload.from_platform,
            to_platform=payload.to_platform,
            amount=payload.amount,
            user_id=payload.user_id,
            note=payload.note,
        ),
        user.email,
    )
    commit(ledger.session)
    return TransactionRead.model_validate(transaction)


__all__ = ["ensure_can_override", "ensure_can_trade_for", "router"]
