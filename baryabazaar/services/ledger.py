"""Transaction store: the source of truth for balances and profit."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from baryabazaar.core.config import get_settings
from baryabazaar.models import AuditLogType, Transaction, TransactionStatus, TransactionType, User, utcnow
from baryabazaar.obs import LEDGER_TRANSACTION_COUNTER, ledger_span
from baryabazaar.services.audit import AuditLogService, snapshot_transaction
from baryabazaar.services.balances import BalanceProjector, require_reason
from baryabazaar.services.errors import BalanceConcurrencyError, InvalidTransactionError, TransferLockedError
from baryabazaar.services.events import (
    TRANSACTION_CREATED,
    TRANSACTION_DELETED,
    TRANSACTION_UPDATED,
    DomainEvent,
    EventBus,
    get_event_bus,
)
from baryabazaar.services.periods import Period, TimeWindow, period_window
from baryabazaar.services.rates import ZERO, derive_rate, quantize_php, quantize_rate, quantize_usdt, to_decimal

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(slots=True, frozen=True)
class TransactionInput:
    """Fields supplied by a trade submission or transfer."""

    type: TransactionType
    user_id: str | None
    usdt_amount: Decimal = ZERO
    php_amount: Decimal = ZERO
    platform: str | None = None
    bank: str | None = None
    rate: Decimal | None = None
    fee: Decimal = ZERO
    note: str | None = None
    user_name: str | None = None


@dataclass(slots=True, frozen=True)
class TransactionPatch:
    """Partial edit; ``None`` leaves the field unchanged."""

    type: TransactionType | None = None
    user_id: str | None = None
    usdt_amount: Decimal | None = None
    php_amount: Decimal | None = None
    platform: str | None = None
    bank: str | None = None
    rate: Decimal | None = None
    fee: Decimal | None = None
    note: str | None = None
    status: TransactionStatus | None = None

    def changes(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self) if getattr(self, item.name) is not None}


@dataclass(slots=True, frozen=True)
class TransactionFilters:
    type: TransactionType | None = None
    user_id: str | None = None
    platform: str | None = None
    bank: str | None = None
    status: TransactionStatus | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = None


def ensure_trade_record(transaction: Transaction, patch: TransactionPatch | None = None) -> None:
    """Only BUY/SELL rows can be corrected in place.

    Transfers and end-of-day collections moved balances explicitly, so the row
    alone cannot undo them; they are corrected by recording a reverse transfer.
    """

    if transaction.type is TransactionType.INTERNAL_TRANSFER:
        raise TransferLockedError(
            f"Internal transfer '{transaction.id}' cannot be edited or deleted; record a reverse transfer instead"
        )
    if patch is not None and patch.type is TransactionType.INTERNAL_TRANSFER:
        raise TransferLockedError("A trade cannot be turned into an internal transfer; record a transfer instead")


def validate_record(transaction: Transaction) -> None:
    """Enforce non-negative amounts and a non-empty BUY/SELL leg."""

    for name in ("usdt_amount", "php_amount", "rate", "fee"):
        if to_decimal(getattr(transaction, name)) < ZERO:
            raise InvalidTransactionError(f"{name} must not be negative")
    if transaction.type in (TransactionType.BUY, TransactionType.SELL):
        if to_decimal(transaction.usdt_amount) <= ZERO and to_decimal(transaction.php_amount) <= ZERO:
            raise InvalidTransactionError("A trade needs a positive USDT or fiat amount")


class TransactionStore:
    """Append, edit and delete transactions with balance effects and audit entries."""

    def __init__(
        self,
        session: Session,
        *,
        projector: BalanceProjector | None = None,
        audit: AuditLogService | None = None,
        bus: EventBus | None = None,
        clock: Clock = utcnow,
        tz: ZoneInfo | None = None,
    ) -> None:
        self._session = session
        self._audit = audit or AuditLogService(session)
        self._bus = bus or get_event_bus()
        self._projector = projector or BalanceProjector(session, audit=self._audit, bus=self._bus)
        self._clock = clock
        self._tz = tz or ZoneInfo(get_settings().timezone)

    def add_transaction(
        self,
        data: TransactionInput,
        actor: str,
        *,
        allow_negative: bool = False,
    ) -> Transaction:
        with ledger_span("ledger.add_transaction", type=data.type.value, user_id=data.user_id):
            user_name = data.user_name or ""
            if data.user_id is not None:
                user = self._session.get(User, data.user_id)
                if user is None:
                    raise InvalidTransactionError(f"User '{data.user_id}' does not exist")
                user_name = user.name

            usdt_amount = quantize_usdt(data.usdt_amount)
            php_amount = quantize_php(data.php_amount)
            if data.rate is not None:
                rate = quantize_rate(data.rate)
            elif data.type is TransactionType.INTERNAL_TRANSFER:
                rate = ZERO
            else:
                rate = derive_rate(usdt_amount, php_amount)

            transaction = Transaction(
                type=data.type,
                user_id=data.user_id,
                user_name=user_name,
                usdt_amount=usdt_amount,
                php_amount=php_amount,
                platform=data.platform,
                bank=data.bank,
                rate=rate,
                fee=quantize_php(data.fee),
                note=data.note,
                timestamp=self._clock(),
                status=TransactionStatus.COMPLETED,
            )
            validate_record(transaction)
            self._session.add(transaction)
            self._flush()

            self._projector.apply_transaction_effect(transaction, allow_negative=allow_negative)
            snapshot = snapshot_transaction(transaction)
            self._audit.record(
                type=AuditLogType.TRANSACTION_CREATED,
                actor=actor,
                target=transaction.id,
                new_value=snapshot,
            )
            self._bus.stage(self._session, DomainEvent(TRANSACTION_CREATED, snapshot))
            LEDGER_TRANSACTION_COUNTER.labels(type=transaction.type.value).inc()
            logger.info(
                "transaction recorded",
                extra={"transaction_id": transaction.id, "transaction_type": transaction.type.value},
            )
            return transaction

    def update_transaction(
        self,
        transaction_id: str,
        patch: TransactionPatch,
        reason: str,
        actor: str,
        *,
        allow_negative: bool = False,
    ) -> Transaction | None:
        """Edit a transaction, moving balances from the old effect to the new one."""

        require_reason(reason)
        transaction = self._session.get(Transaction, transaction_id)
        if transaction is None:
            return None
        ensure_trade_record(transaction, patch)

        with ledger_span("ledger.update_transaction", transaction_id=transaction_id):
            old_snapshot = snapshot_transaction(transaction)
            self._projector.reverse_transaction_effect(transaction, allow_negative=allow_negative)

            changes = patch.changes()
            if "user_id" in changes:
                user = self._session.get(User, changes["user_id"])
                if user is None:
                    raise InvalidTransactionError(f"User '{changes['user_id']}' does not exist")
                transaction.user_name = user.name
            for name, value in changes.items():
                if name == "usdt_amount":
                    value = quantize_usdt(value)
                elif name in ("php_amount", "fee"):
                    value = quantize_php(value)
                elif name == "rate":
                    value = quantize_rate(value)
                setattr(transaction, name, value)
            amounts_changed = "usdt_amount" in changes or "php_amount" in changes
            if amounts_changed and "rate" not in changes:
                transaction.rate = derive_rate(transaction.usdt_amount, transaction.php_amount)
            validate_record(transaction)
            self._flush()

            self._projector.apply_transaction_effect(transaction, allow_negative=allow_negative)
            new_snapshot = snapshot_transaction(transaction)
            self._audit.record(
                type=AuditLogType.TRANSACTION_EDIT,
                actor=actor,
                target=transaction.id,
                reason=reason,
                old_value=old_snapshot,
                new_value=new_snapshot,
            )
            self._bus.stage(
                self._session,
                DomainEvent(TRANSACTION_UPDATED, {"old": old_snapshot, "new": new_snapshot}),
            )
            return transaction

    def delete_transaction(
        self,
        transaction_id: str,
        reason: str,
        actor: str,
        *,
        allow_negative: bool = False,
    ) -> Transaction | None:
        """Remove a transaction and reverse its balance effect."""

        require_reason(reason)
        transaction = self._session.get(Transaction, transaction_id)
        if transaction is None:
            return None
        ensure_trade_record(transaction)

        with ledger_span("ledger.delete_transaction", transaction_id=transaction_id):
            old_snapshot = snapshot_transaction(transaction)
            self._projector.reverse_transaction_effect(transaction, allow_negative=allow_negative)
            self._session.delete(transaction)
            self._flush()
            self._audit.record(
                type=AuditLogType.TRANSACTION_DELETE,
                actor=actor,
                target=transaction_id,
                reason=reason,
                old_value=old_snapshot,
                new_value=None,
            )
            self._bus.stage(self._session, DomainEvent(TRANSACTION_DELETED, old_snapshot))
            return transaction

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        return self._session.get(Transaction, transaction_id)

    def list_transactions(self, filters: TransactionFilters | None = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = select(Transaction)
        if filters.type is not None:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.user_id:
            stmt = stmt.where(Transaction.user_id == filters.user_id)
        if filters.platform:
            stmt = stmt.where(Transaction.platform == filters.platform)
        if filters.bank:
            stmt = stmt.where(Transaction.bank == filters.bank)
        if filters.status is not None:
            stmt = stmt.where(Transaction.status == filters.status)
        if filters.since is not None:
            stmt = stmt.where(Transaction.timestamp >= filters.since)
        if filters.until is not None:
            stmt = stmt.where(Transaction.timestamp < filters.until)
        stmt = stmt.order_by(Transaction.timestamp.desc(), Transaction.created_at.desc())
        if filters.limit:
            stmt = stmt.limit(filters.limit)
        return list(self._session.scalars(stmt))

    def transactions_in_window(self, window: TimeWindow, *, user_id: str | None = None) -> list[Transaction]:
        return self.list_transactions(TransactionFilters(user_id=user_id, since=window.start, until=window.end))

    def get_transactions_by_period(
        self,
        period: Period,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Transaction]:
        window = period_window(period, now=self._clock(), tz=self._tz, start=start, end=end)
        return self.transactions_in_window(window)

    def _flush(self) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise BalanceConcurrencyError("Concurrent update detected on transaction") from exc


__all__ = [
    "Clock",
    "TransactionFilters",
    "TransactionInput",
    "TransactionPatch",
    "TransactionStore",
    "ensure_trade_record",
    "validate_record",
]
