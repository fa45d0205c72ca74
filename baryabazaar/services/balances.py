"""Balance projection over the transaction ledger.

Per-user bank balances and per-platform USDT balances are a derived view of the
completed transactions plus audited administrative adjustments. Every write goes
through a row carrying ``lock_version`` so concurrent writers surface as
:class:`BalanceConcurrencyError` instead of silently overwriting each other.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from baryabazaar.models import (
    AuditLogType,
    Platform,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
    UserBankBalance,
)
from baryabazaar.obs.metrics import BALANCE_CONFLICT_COUNTER
from baryabazaar.services.audit import AuditLogService
from baryabazaar.services.errors import (
    BalanceConcurrencyError,
    BankNotAssignedError,
    InvalidTransactionError,
    MissingReasonError,
    NegativeBalanceError,
    UnknownPlatformError,
)
from baryabazaar.services.events import BALANCE_CHANGED, DomainEvent, EventBus, get_event_bus
from baryabazaar.services.rates import ZERO, quantize_php, quantize_usdt, to_decimal, weighted_average_rate

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TransactionEffect:
    """Signed balance deltas implied by one transaction."""

    user_id: str | None = None
    bank: str | None = None
    php_delta: Decimal = ZERO
    platform: str | None = None
    usdt_delta: Decimal = ZERO

    @property
    def is_empty(self) -> bool:
        return self.php_delta == ZERO and self.usdt_delta == ZERO

    def inverted(self) -> TransactionEffect:
        return TransactionEffect(
            user_id=self.user_id,
            bank=self.bank,
            php_delta=-self.php_delta,
            platform=self.platform,
            usdt_delta=-self.usdt_delta,
        )


NO_EFFECT = TransactionEffect()


def transaction_effect(transaction: Transaction) -> TransactionEffect:
    """BUY credits the bank and platform, SELL debits both.

    Internal transfers carry no inferred effect; the transfer flow moves balances
    explicitly. Only completed transactions affect balances.
    """

    if transaction.status != TransactionStatus.COMPLETED:
        return NO_EFFECT
    php = to_decimal(transaction.php_amount)
    usdt = to_decimal(transaction.usdt_amount)
    match transaction.type:
        case TransactionType.BUY:
            sign = Decimal(1)
        case TransactionType.SELL:
            sign = Decimal(-1)
        case TransactionType.INTERNAL_TRANSFER:
            return NO_EFFECT
        case _:
            raise InvalidTransactionError(f"Unsupported transaction type '{transaction.type}'")
    return TransactionEffect(
        user_id=transaction.user_id if transaction.bank else None,
        bank=transaction.bank,
        php_delta=sign * php if transaction.bank else ZERO,
        platform=transaction.platform,
        usdt_delta=sign * usdt if transaction.platform else ZERO,
    )


@dataclass(slots=True)
class ReplayedBalances:
    user_banks: dict[tuple[str, str], Decimal] = field(default_factory=dict)
    platforms: dict[str, Decimal] = field(default_factory=dict)


def replay_balances(transactions: Iterable[Transaction]) -> ReplayedBalances:
    """Rebuild balances from an empty state in timestamp order."""

    result = ReplayedBalances()
    for transaction in sorted(transactions, key=lambda item: item.timestamp):
        effect = transaction_effect(transaction)
        if effect.user_id and effect.bank:
            key = (effect.user_id, effect.bank)
            result.user_banks[key] = result.user_banks.get(key, ZERO) + effect.php_delta
        if effect.platform:
            result.platforms[effect.platform] = result.platforms.get(effect.platform, ZERO) + effect.usdt_delta
    return result


@dataclass(slots=True, frozen=True)
class BalanceSnapshot:
    """Point-in-time balances used by the validation layer."""

    user_id: str | None
    assigned_banks: tuple[str, ...] = ()
    bank_balances: dict[str, Decimal] = field(default_factory=dict)
    platform_balances: dict[str, Decimal] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class BalanceDrift:
    kind: str
    key: str
    stored: Decimal
    replayed: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored - self.replayed


@dataclass(slots=True, frozen=True)
class ReconciliationReport:
    drifts: tuple[BalanceDrift, ...]

    @property
    def is_consistent(self) -> bool:
        return not self.drifts


class BalanceProjector:
    """Applies transaction effects and administrative adjustments to balances."""

    def __init__(
        self,
        session: Session,
        *,
        audit: AuditLogService | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._session = session
        self._audit = audit or AuditLogService(session)
        self._bus = bus or get_event_bus()

    # -- effects -------------------------------------------------------

    def transaction_effect(self, transaction: Transaction) -> TransactionEffect:
        return transaction_effect(transaction)

    def apply_transaction_effect(self, transaction: Transaction, *, allow_negative: bool = False) -> TransactionEffect:
        effect = transaction_effect(transaction)
        self._apply(effect, allow_negative=allow_negative)
        return effect

    def reverse_transaction_effect(self, transaction: Transaction, *, allow_negative: bool = False) -> TransactionEffect:
        effect = transaction_effect(transaction).inverted()
        self._apply(effect, allow_negative=allow_negative)
        return effect

    def _apply(self, effect: TransactionEffect, *, allow_negative: bool) -> None:
        if effect.is_empty:
            return
        if effect.user_id and effect.bank and effect.php_delta != ZERO:
            row = self._balance_row(effect.user_id, effect.bank, create=True)
            if row is not None:
                self._write_user_amount(row, row.amount + effect.php_delta, allow_negative=allow_negative)
                self._stage_change(
                    kind="user_bank", key=f"{row.user_id}:{row.bank}", amount=row.amount, user_id=row.user_id, bank=row.bank
                )
        if effect.platform and effect.usdt_delta != ZERO:
            platform = self._platform(effect.platform)
            if platform is None:
                raise UnknownPlatformError(f"Platform '{effect.platform}' is not registered")
            self._write_platform_amount(platform, platform.balance + effect.usdt_delta, allow_negative=allow_negative)
            self._stage_change(kind="platform", key=platform.name, amount=platform.balance, platform=platform.name)

    # -- administrative primitives --------------------------------------

    def adjust_user_balance(
        self,
        user_id: str,
        bank: str,
        new_amount: Decimal,
        reason: str,
        actor: str,
        *,
        expected_version: int | None = None,
        allow_negative: bool = False,
    ) -> UserBankBalance | None:
        """Set an absolute bank balance and record the old and new values."""

        require_reason(reason)
        user = self._session.get(User, user_id)
        if user is None:
            return None
        existing = self._find_row(user, bank)
        self._check_version(
            existing.lock_version if existing is not None else 0, expected_version, resource="user_bank_balance"
        )
        row = existing if existing is not None else self._open_row(user, bank)
        old_amount = to_decimal(row.amount)
        self._write_user_amount(row, to_decimal(new_amount), allow_negative=allow_negative)
        self._record_adjustment(
            target=f"user:{user_id}:{bank}",
            reason=reason,
            actor=actor,
            old_value={"user_id": user_id, "bank": bank, "amount": old_amount},
            new_value={"user_id": user_id, "bank": bank, "amount": row.amount},
            allow_negative=allow_negative,
        )
        self._stage_change(kind="user_bank", key=f"{user_id}:{bank}", amount=row.amount, user_id=user_id, bank=bank)
        return row

    def adjust_company_usdt_balance(
        self,
        platform: str,
        new_amount: Decimal,
        reason: str,
        actor: str,
        *,
        expected_version: int | None = None,
        allow_negative: bool = False,
    ) -> Platform | None:
        """Set an absolute platform USDT balance and record the old and new values."""

        require_reason(reason)
        record = self._platform(platform)
        if record is None:
            return None
        self._check_version(record.lock_version or 0, expected_version, resource="platform")
        old_amount = to_decimal(record.balance)
        self._write_platform_amount(record, to_decimal(new_amount), allow_negative=allow_negative)
        self._record_adjustment(
            target=f"platform:{platform}",
            reason=reason,
            actor=actor,
            old_value={"platform": platform, "amount": old_amount},
            new_value={"platform": platform, "amount": record.balance},
            allow_negative=allow_negative,
        )
        self._stage_change(kind="platform", key=platform, amount=record.balance, platform=platform)
        return record

    def shift_user_balance(
        self,
        user_id: str,
        bank: str,
        delta: Decimal,
        reason: str,
        actor: str,
        *,
        allow_negative: bool = False,
    ) -> UserBankBalance | None:
        """Move a bank balance by ``delta``; used by transfers and collections."""

        require_reason(reason)
        row = self._balance_row(user_id, bank, create=True)
        if row is None:
            return None
        old_amount = to_decimal(row.amount)
        self._write_user_amount(row, old_amount + to_decimal(delta), allow_negative=allow_negative)
        self._record_adjustment(
            target=f"user:{user_id}:{bank}",
            reason=reason,
            actor=actor,
            old_value={"user_id": user_id, "bank": bank, "amount": old_amount},
            new_value={"user_id": user_id, "bank": bank, "amount": row.amount, "delta": to_decimal(delta)},
            allow_negative=allow_negative,
        )
        self._stage_change(kind="user_bank", key=f"{user_id}:{bank}", amount=row.amount, user_id=user_id, bank=bank)
        return row

    def shift_platform_balance(
        self,
        platform: str,
        delta: Decimal,
        reason: str,
        actor: str,
        *,
        allow_negative: bool = False,
    ) -> Platform | None:
        require_reason(reason)
        record = self._platform(platform)
        if record is None:
            return None
        old_amount = to_decimal(record.balance)
        self._write_platform_amount(record, old_amount + to_decimal(delta), allow_negative=allow_negative)
        self._record_adjustment(
            target=f"platform:{platform}",
            reason=reason,
            actor=actor,
            old_value={"platform": platform, "amount": old_amount},
            new_value={"platform": platform, "amount": record.balance, "delta": to_decimal(delta)},
            allow_negative=allow_negative,
        )
        self._stage_change(kind="platform", key=platform, amount=record.balance, platform=platform)
        return record

    # -- queries ----------------------------------------------------------

    def get_total_company_usdt(self) -> Decimal:
        return sum((to_decimal(p.balance) for p in self._session.scalars(select(Platform))), ZERO)

    def get_average_buy_rate(self) -> Decimal:
        return weighted_average_rate(self._completed(TransactionType.BUY))

    def get_average_sell_rate(self) -> Decimal:
        return weighted_average_rate(self._completed(TransactionType.SELL))

    def get_platform_balances(self) -> dict[str, Decimal]:
        platforms = self._session.scalars(select(Platform).order_by(Platform.name))
        return {platform.name: to_decimal(platform.balance) for platform in platforms}

    def get_user_balances(self) -> dict[str, dict[str, Decimal]]:
        balances: dict[str, dict[str, Decimal]] = {}
        for user in self._session.scalars(select(User).order_by(User.name)):
            balances[user.id] = {row.bank: to_decimal(row.amount) for row in user.balances}
        return balances

    def get_balance_row(self, user_id: str, bank: str) -> UserBankBalance | None:
        return self._balance_row(user_id, bank, create=False)

    def snapshot(self, user_id: str | None) -> BalanceSnapshot:
        user = self._session.get(User, user_id) if user_id else None
        return BalanceSnapshot(
            user_id=user_id,
            assigned_banks=tuple(user.assigned_banks) if user else (),
            bank_balances={row.bank: to_decimal(row.amount) for row in user.balances} if user else {},
            platform_balances=self.get_platform_balances(),
        )

    def reconcile(self) -> ReconciliationReport:
        """Compare stored balances with a replay of completed transactions."""

        replayed = replay_balances(self._session.scalars(select(Transaction)))
        drifts: list[BalanceDrift] = []
        stored_rows = {
            (row.user_id, row.bank): to_decimal(row.amount)
            for row in self._session.scalars(select(UserBankBalance))
        }
        for key in sorted(set(stored_rows) | set(replayed.user_banks)):
            stored = stored_rows.get(key, ZERO)
            expected = replayed.user_banks.get(key, ZERO)
            if stored != expected:
                drifts.append(BalanceDrift("user_bank", f"{key[0]}:{key[1]}", stored, expected))
        stored_platforms = self.get_platform_balances()
        for name in sorted(set(stored_platforms) | set(replayed.platforms)):
            stored = stored_platforms.get(name, ZERO)
            expected = replayed.platforms.get(name, ZERO)
            if stored != expected:
                drifts.append(BalanceDrift("platform", name, stored, expected))
        if drifts:
            logger.warning("balance drift detected", extra={"drift_count": len(drifts)})
        return ReconciliationReport(tuple(drifts))

    # -- internals ----------------------------------------------------------

    def _completed(self, transaction_type: TransactionType) -> list[Transaction]:
        stmt = select(Transaction).where(
            Transaction.type == transaction_type,
            Transaction.status == TransactionStatus.COMPLETED,
        )
        return list(self._session.scalars(stmt))

    def _platform(self, name: str) -> Platform | None:
        return self._session.scalars(select(Platform).where(Platform.name == name)).first()

    def _balance_row(self, user_id: str, bank: str, *, create: bool) -> UserBankBalance | None:
        user = self._session.get(User, user_id)
        if user is None:
            return None
        return self._open_row(user, bank) if create else self._find_row(user, bank)

    @staticmethod
    def _find_row(user: User, bank: str) -> UserBankBalance | None:
        return next((row for row in user.balances if row.bank == bank), None)

    def _open_row(self, user: User, bank: str) -> UserBankBalance:
        """Return the user's row for ``bank``, creating an empty one for an assigned bank."""

        row = self._find_row(user, bank)
        if row is not None:
            return row
        if bank not in user.assigned_banks:
            raise BankNotAssignedError(f"Bank '{bank}' is not assigned to user '{user.name}'")
        row = UserBankBalance(user_id=user.id, bank=bank, amount=Decimal("0.00"))
        user.balances.append(row)
        self._flush("user_bank_balance")
        return row

    def _write_user_amount(self, row: UserBankBalance, amount: Decimal, *, allow_negative: bool) -> None:
        if amount < ZERO and not allow_negative:
            raise NegativeBalanceError(
                f"Balance of bank '{row.bank}' would become {quantize_php(amount)}; an explicit override is required"
            )
        row.amount = quantize_php(amount)
        self._flush("user_bank_balance")

    def _write_platform_amount(self, platform: Platform, amount: Decimal, *, allow_negative: bool) -> None:
        if amount < ZERO and not allow_negative:
            raise NegativeBalanceError(
                f"Platform '{platform.name}' balance would become {quantize_usdt(amount)}; an explicit override is required"
            )
        platform.balance = quantize_usdt(amount)
        self._flush("platform")

    def _flush(self, resource: str) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            BALANCE_CONFLICT_COUNTER.labels(resource=resource).inc()
            raise BalanceConcurrencyError(f"Concurrent update detected on {resource}") from exc

    @staticmethod
    def _check_version(current: int, expected: int | None, *, resource: str) -> None:
        if expected is not None and current != expected:
            BALANCE_CONFLICT_COUNTER.labels(resource=resource).inc()
            raise BalanceConcurrencyError(
                f"Stale {resource} version {expected}; current version is {current}"
            )

    def _record_adjustment(
        self,
        *,
        target: str,
        reason: str,
        actor: str,
        old_value: dict[str, object],
        new_value: dict[str, object],
        allow_negative: bool,
    ) -> None:
        if allow_negative:
            new_value = {**new_value, "allow_negative": True}
        self._audit.record(
            type=AuditLogType.BALANCE_ADJUSTMENT,
            actor=actor,
            target=target,
            reason=reason,
            old_value=old_value,
            new_value=new_value,
        )

    def _stage_change(self, *, kind: str, key: str, amount: Decimal, **context: str) -> None:
        self._bus.stage(
            self._session,
            DomainEvent(BALANCE_CHANGED, {"kind": kind, "key": key, "amount": str(amount), **context}),
        )


def require_reason(reason: str | None) -> None:
    if not reason or not reason.strip():
        raise MissingReasonError("A non-empty reason is required")


__all__ = [
    "BalanceDrift",
    "BalanceProjector",
    "BalanceSnapshot",
    "NO_EFFECT",
    "ReconciliationReport",
    "ReplayedBalances",
    "TransactionEffect",
    "replay_balances",
    "require_reason",
    "transaction_effect",
]
