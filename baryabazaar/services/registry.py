"""User, platform and bank administration."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from baryabazaar.models import (
    AuditLogType,
    Bank,
    Platform,
    Transaction,
    TransactionStatus,
    User,
    UserBankBalance,
    UserRole,
)
from baryabazaar.services.audit import AuditLogService
from baryabazaar.services.errors import (
    BankInUseError,
    DuplicateResourceError,
    PlatformNotEmptyError,
    RoleAssignmentError,
    UnknownBankError,
    UserNotDeletableError,
)
from baryabazaar.services.rates import ZERO, quantize_usdt, to_decimal
from baryabazaar.services.roles import can_manage_role, validate_role_assignment

logger = logging.getLogger(__name__)


def snapshot_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "assigned_banks": list(user.assigned_banks),
    }


class RegistryService:
    """Administrative mutations; each successful call writes one system log entry."""

    def __init__(self, session: Session, *, audit: AuditLogService | None = None) -> None:
        self._session = session
        self._audit = audit or AuditLogService(session)

    # -- users -------------------------------------------------------------

    def list_users(self) -> list[User]:
        return list(self._session.scalars(select(User).order_by(User.name)))

    def get_user(self, user_id: str) -> User | None:
        return self._session.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self._session.scalars(select(User).where(User.email == email.lower())).first()

    def add_user(
        self,
        *,
        name: str,
        email: str,
        role: UserRole,
        assigned_banks: Iterable[str],
        actor: str,
        actor_role: UserRole | None = None,
        hashed_password: str | None = None,
    ) -> User:
        if actor_role is not None:
            validate_role_assignment(actor_role, role)
        if self.get_user_by_email(email) is not None:
            raise DuplicateResourceError(f"A user with email '{email}' already exists")
        banks = self._known_banks(assigned_banks)

        user = User(
            name=name,
            email=email.lower(),
            role=role,
            assigned_banks=banks,
            hashed_password=hashed_password,
        )
        self._session.add(user)
        self._session.flush()
        self._audit.record(type=AuditLogType.USER_ADDED, actor=actor, target=user.id, new_value=snapshot_user(user))
        return user

    def update_user(
        self,
        user_id: str,
        *,
        actor: str,
        name: str | None = None,
        email: str | None = None,
        assigned_banks: Iterable[str] | None = None,
        reason: str | None = None,
    ) -> User | None:
        user = self.get_user(user_id)
        if user is None:
            return None
        old = snapshot_user(user)
        if name is not None:
            user.name = name
        if email is not None and email.lower() != user.email:
            if self.get_user_by_email(email) is not None:
                raise DuplicateResourceError(f"A user with email '{email}' already exists")
            user.email = email.lower()
        if assigned_banks is not None:
            user.assigned_banks = self._known_banks(assigned_banks)
        self._session.flush()
        self._audit.record(
            type=AuditLogType.USER_UPDATED,
            actor=actor,
            target=user.id,
            reason=reason,
            old_value=old,
            new_value=snapshot_user(user),
        )
        return user

    def change_role(
        self,
        user_id: str,
        new_role: UserRole | str,
        *,
        actor: str,
        actor_role: UserRole,
        reason: str | None = None,
    ) -> User | None:
        user = self.get_user(user_id)
        if user is None:
            return None
        role = validate_role_assignment(actor_role, new_role)
        if not can_manage_role(actor_role, user.role):
            raise RoleAssignmentError(f"Insufficient permissions to manage a {user.role.value} account")
        old_role = user.role
        user.role = role
        self._session.flush()
        self._audit.record(
            type=AuditLogType.ROLE_CHANGE,
            actor=actor,
            target=user.id,
            reason=reason,
            old_value={"role": old_role.value},
            new_value={"role": role.value},
        )
        logger.info("role changed", extra={"user_id": user.id, "role": role.value})
        return user

    def delete_user(self, user_id: str, *, actor: str, reason: str | None = None) -> User | None:
        user = self.get_user(user_id)
        if user is None:
            return None
        non_zero = [row.bank for row in user.balances if to_decimal(row.amount) != ZERO]
        if non_zero:
            raise UserNotDeletableError(
                f"User '{user.name}' still holds balances in: {', '.join(sorted(non_zero))}"
            )
        pending = self._session.scalars(
            select(Transaction.id).where(
                Transaction.user_id == user.id,
                Transaction.status == TransactionStatus.PENDING,
            )
        ).first()
        if pending is not None:
            raise UserNotDeletableError(f"User '{user.name}' has pending transactions")

        old = snapshot_user(user)
        self._session.delete(user)
        self._session.flush()
        self._audit.record(type=AuditLogType.USER_DELETED, actor=actor, target=old["id"], reason=reason, old_value=old)
        return user

    # -- platforms ---------------------------------------------------------

    def list_platforms(self) -> list[Platform]:
        return list(self._session.scalars(select(Platform).order_by(Platform.name)))

    def get_platform(self, name: str) -> Platform | None:
        return self._session.scalars(select(Platform).where(Platform.name == name)).first()

    def add_platform(self, name: str, *, actor: str, initial_balance: Decimal = ZERO) -> Platform:
        if self.get_platform(name) is not None:
            raise DuplicateResourceError(f"Platform '{name}' already exists")
        platform = Platform(name=name, balance=quantize_usdt(initial_balance))
        self._session.add(platform)
        self._session.flush()
        self._audit.record(
            type=AuditLogType.PLATFORM_ADDED,
            actor=actor,
            target=name,
            new_value={"name": name, "balance": platform.balance},
        )
        return platform

    def delete_platform(self, name: str, *, actor: str, reason: str | None = None) -> Platform | None:
        platform = self.get_platform(name)
        if platform is None:
            return None
        if to_decimal(platform.balance) != ZERO:
            raise PlatformNotEmptyError(
                f"Platform '{name}' still holds {platform.balance} USDT; transfer the balance before removing it"
            )
        old = {"name": name, "balance": platform.balance}
        self._session.delete(platform)
        self._session.flush()
        self._audit.record(
            type=AuditLogType.PLATFORM_DELETED,
            actor=actor,
            target=name,
            reason=reason,
            old_value=old,
        )
        return platform

    # -- banks -------------------------------------------------------------

    def list_banks(self) -> list[Bank]:
        return list(self._session.scalars(select(Bank).order_by(Bank.name)))

    def get_bank(self, name: str) -> Bank | None:
        return self._session.scalars(select(Bank).where(Bank.name == name)).first()

    def add_bank(self, name: str, *, actor: str) -> Bank:
        if self.get_bank(name) is not None:
            raise DuplicateResourceError(f"Bank '{name}' already exists")
        bank = Bank(name=name)
        self._session.add(bank)
        self._session.flush()
        self._audit.record(type=AuditLogType.BANK_ADDED, actor=actor, target=name, new_value={"name": name})
        return bank

    def delete_bank(self, name: str, *, actor: str, reason: str | None = None) -> Bank | None:
        """Remove a bank once no user holds money in it.

        The bank is unassigned from every user and zero balance rows are dropped.
        """

        bank = self.get_bank(name)
        if bank is None:
            return None
        rows = list(self._session.scalars(select(UserBankBalance).where(UserBankBalance.bank == name)))
        holders = sorted(row.user.name for row in rows if to_decimal(row.amount) != ZERO)
        if holders:
            raise BankInUseError(f"Bank '{name}' still has non-zero balances for: {', '.join(holders)}")

        affected: list[str] = []
        for user in self._session.scalars(select(User)):
            if name in user.assigned_banks:
                user.assigned_banks = [item for item in user.assigned_banks if item != name]
                affected.append(user.id)
        for row in rows:
            row.user.balances.remove(row)
        self._session.delete(bank)
        self._session.flush()
        self._audit.record(
            type=AuditLogType.BANK_DELETED,
            actor=actor,
            target=name,
            reason=reason,
            old_value={"name": name, "assigned_users": affected},
        )
        return bank

    def _known_banks(self, names: Iterable[str]) -> list[str]:
        requested = list(dict.fromkeys(names))
        registered = {bank.name for bank in self.list_banks()}
        unknown = [item for item in requested if item not in registered]
        if unknown:
            raise UnknownBankError(f"Unknown bank(s): {', '.join(unknown)}")
        return requested


__all__ = ["RegistryService", "snapshot_user"]
