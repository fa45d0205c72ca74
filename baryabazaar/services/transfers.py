"""Internal fiat and USDT transfers."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from baryabazaar.models import Transaction, TransactionType, User
from baryabazaar.services.balances import BalanceProjector
from baryabazaar.services.errors import InvalidTransactionError, UnknownPlatformError
from baryabazaar.services.ledger import TransactionInput, TransactionStore
from baryabazaar.services.rates import ZERO, to_decimal


@dataclass(slots=True, frozen=True)
class FiatTransfer:
    from_user_id: str
    from_bank: str
    to_user_id: str
    to_bank: str
    amount: Decimal
    note: str | None = None


@dataclass(slots=True, frozen=True)
class UsdtTransfer:
    from_platform: str
    to_platform: str
    amount: Decimal
    user_id: str | None = None
    note: str | None = None


class TransferService:
    """Moves balances explicitly and records the movement as an INTERNAL_TRANSFER."""

    def __init__(self, session: Session, store: TransactionStore, projector: BalanceProjector) -> None:
        self._session = session
        self._store = store
        self._projector = projector

    def transfer_fiat(self, transfer: FiatTransfer, actor: str, *, allow_negative: bool = False) -> Transaction:
        amount = to_decimal(transfer.amount)
        if amount <= ZERO:
            raise InvalidTransactionError("Transfer amount must be greater than 0")
        if (transfer.from_user_id, transfer.from_bank) == (transfer.to_user_id, transfer.to_bank):
            raise InvalidTransactionError("Source and destination accounts must differ")
        source = self._session.get(User, transfer.from_user_id)
        destination = self._session.get(User, transfer.to_user_id)
        if source is None or destination is None:
            raise InvalidTransactionError("Both transfer parties must be existing users")

        reason = f"Transfer {source.name}/{transfer.from_bank} -> {destination.name}/{transfer.to_bank}"
        self._projector.shift_user_balance(
            source.id, transfer.from_bank, -amount, reason, actor, allow_negative=allow_negative
        )
        self._projector.shift_user_balance(destination.id, transfer.to_bank, amount, reason, actor)
        return self._store.add_transaction(
            TransactionInput(
                type=TransactionType.INTERNAL_TRANSFER,
                user_id=source.id,
                php_amount=amount,
                bank=transfer.from_bank,
                note=transfer.note or reason,
            ),
            actor,
        )

    def transfer_usdt(self, transfer: UsdtTransfer, actor: str, *, allow_negative: bool = False) -> Transaction:
        amount = to_decimal(transfer.amount)
        if amount <= ZERO:
            raise InvalidTransactionError("Transfer amount must be greater than 0")
        if transfer.from_platform == transfer.to_platform:
            raise InvalidTransactionError("Source and destination platforms must differ")

        reason = f"Transfer {transfer.from_platform} -> {transfer.to_platform}"
        for name, delta in ((transfer.from_platform, -amount), (transfer.to_platform, amount)):
            shifted = self._projector.shift_platform_balance(
                name, delta, reason, actor, allow_negative=allow_negative
            )
            if shifted is None:
                raise UnknownPlatformError(f"Platform '{name}' is not registered")
        return self._store.add_transaction(
            TransactionInput(
                type=TransactionType.INTERNAL_TRANSFER,
                user_id=transfer.user_id,
                usdt_amount=amount,
                platform=transfer.from_platform,
                note=transfer.note or reason,
            ),
            actor,
        )


__all__ = ["FiatTransfer", "TransferService", "UsdtTransfer"]
