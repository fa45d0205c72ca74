"""End-of-day profit collection."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from baryabazaar.models import AuditLogType, TransactionType, User
from baryabazaar.services.audit import AuditLogService
from baryabazaar.services.balances import BalanceProjector
from baryabazaar.services.errors import InvalidTransactionError
from baryabazaar.services.events import END_OF_DAY_COMPLETED, DomainEvent, EventBus
from baryabazaar.services.ledger import TransactionInput, TransactionStore
from baryabazaar.services.periods import TimeWindow
from baryabazaar.services.profit import ProfitBreakdown, ProfitService, profit_by_user
from baryabazaar.services.rates import ZERO, quantize_php, to_decimal

logger = logging.getLogger(__name__)

COLLECTION_REASON = "EOD profit collection"


@dataclass(slots=True, frozen=True)
class UserProfitPreview:
    user_id: str
    name: str
    assigned_banks: tuple[str, ...]
    profit: ProfitBreakdown


@dataclass(slots=True, frozen=True)
class ProfitCollection:
    user_id: str
    bank: str
    amount: Decimal


@dataclass(slots=True, frozen=True)
class EndOfDayReport:
    window: TimeWindow
    collections: tuple[ProfitCollection, ...]
    total_collected: Decimal
    total_php: Decimal
    total_usdt: Decimal
    transaction_count: int


class EndOfDayService:
    def __init__(
        self,
        session: Session,
        *,
        store: TransactionStore,
        projector: BalanceProjector,
        profit: ProfitService,
        audit: AuditLogService,
        bus: EventBus,
    ) -> None:
        self._session = session
        self._store = store
        self._projector = projector
        self._profit = profit
        self._audit = audit
        self._bus = bus

    def preview(self) -> list[UserProfitPreview]:
        """Per-user realized profit for the current trading day."""

        window = self._profit.daily_window()
        transactions = self._store.transactions_in_window(window)
        previews: list[UserProfitPreview] = []
        for user_id, breakdown in profit_by_user(transactions).items():
            user = self._session.get(User, user_id)
            if user is None:
                continue
            previews.append(
                UserProfitPreview(
                    user_id=user.id,
                    name=user.name,
                    assigned_banks=tuple(user.assigned_banks),
                    profit=breakdown,
                )
            )
        previews.sort(key=lambda item: item.profit.net_profit, reverse=True)
        return previews

    def execute(self, collections: Iterable[ProfitCollection], actor: str, *, note: str | None = None) -> EndOfDayReport:
        """Debit each collected profit from the chosen bank and record it."""

        window = self._profit.daily_window()
        collected: list[ProfitCollection] = []
        for item in collections:
            amount = quantize_php(item.amount)
            if amount <= ZERO:
                continue
            user = self._session.get(User, item.user_id)
            if user is None:
                raise InvalidTransactionError(f"User '{item.user_id}' does not exist")
            self._projector.shift_user_balance(user.id, item.bank, -amount, COLLECTION_REASON, actor)
            self._store.add_transaction(
                TransactionInput(
                    type=TransactionType.INTERNAL_TRANSFER,
                    user_id=user.id,
                    php_amount=amount,
                    bank=item.bank,
                    note=f"EOD Profit Collection - {note or 'Regular EOD'}",
                ),
                actor,
            )
            collected.append(ProfitCollection(user_id=user.id, bank=item.bank, amount=amount))

        trades = [
            item
            for item in self._store.transactions_in_window(window)
            if item.type is not TransactionType.INTERNAL_TRANSFER
        ]
        report = EndOfDayReport(
            window=window,
            collections=tuple(collected),
            total_collected=sum((item.amount for item in collected), ZERO),
            total_php=sum((to_decimal(item.php_amount) for item in trades), ZERO),
            total_usdt=sum((to_decimal(item.usdt_amount) for item in trades), ZERO),
            transaction_count=len(trades),
        )
        summary = {
            "window_start": window.start,
            "collections": [
                {"user_id": item.user_id, "bank": item.bank, "amount": item.amount} for item in collected
            ],
            "total_collected": report.total_collected,
            "total_php": report.total_php,
            "total_usdt": report.total_usdt,
            "transaction_count": report.transaction_count,
        }
        entry = self._audit.record(
            type=AuditLogType.END_OF_DAY,
            actor=actor,
            target=window.start.date().isoformat(),
            reason=note,
            new_value=summary,
        )
        self._bus.stage(self._session, DomainEvent(END_OF_DAY_COMPLETED, entry.new_value))
        logger.info("end of day executed", extra={"collections": len(collected)})
        return report


__all__ = ["EndOfDayReport", "EndOfDayService", "ProfitCollection", "UserProfitPreview"]
