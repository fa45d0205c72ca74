from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from baryabazaar.models import (
    AuditLog,
    AuditLogType,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
    UserBankBalance,
    UserRole,
)
from baryabazaar.services.errors import (
    BankInUseError,
    DuplicateResourceError,
    PlatformNotEmptyError,
    RoleAssignmentError,
    UnknownBankError,
    UserNotDeletableError,
)

ACTOR = "root@example.com"


def _last_entry(session, type: AuditLogType) -> AuditLog:
    return session.scalars(select(AuditLog).where(AuditLog.type == type)).one()


def test_add_user_normalises_email_and_is_audited(ledger, seeded: SimpleNamespace, db_session) -> None:
    user = ledger.registry.add_user(
        name="Maria",
        email="Maria@Example.com",
        role=UserRole.ANALYST,
        assigned_banks=["BDO", "BDO"],
        actor=ACTOR,
        actor_role=UserRole.SUPER_ADMIN,
    )

    assert user.email == "maria@example.com"
    assert user.assigned_banks == ["BDO"]
    assert ledger.registry.get_user_by_email("MARIA@example.com") is user
    entry = _last_entry(db_session, AuditLogType.USER_ADDED)
    assert entry.target == user.id
    assert entry.new_value["role"] == "analyst"


def test_add_user_guards(ledger, seeded: SimpleNamespace) -> None:
    with pytest.raises(DuplicateResourceError):
        ledger.registry.add_user(
            name="Copy", email="ADMIN@example.com", role=UserRole.ANALYST, assigned_banks=[], actor=ACTOR
        )
    with pytest.raises(UnknownBankError):
        ledger.registry.add_user(
            name="New", email="new@example.com", role=UserRole.ANALYST, assigned_banks=["Metrobank"], actor=ACTOR
        )
    with pytest.raises(RoleAssignmentError):
        ledger.registry.add_user(
            name="Peer",
            email="peer@example.com",
            role=UserRole.ADMIN,
            assigned_banks=[],
            actor="admin@example.com",
            actor_role=UserRole.ADMIN,
        )


def test_update_user_records_before_and_after(ledger, seeded: SimpleNamespace, db_session) -> None:
    updated = ledger.registry.update_user(
        seeded.analyst.id, actor=ACTOR, name="Ana", assigned_banks=["BDO"], reason="moved desks"
    )

    assert updated is not None
    entry = _last_entry(db_session, AuditLogType.USER_UPDATED)
    assert entry.old_value["name"] == "Analyst"
    assert entry.new_value["name"] == "Ana"
    assert entry.new_value["assigned_banks"] == ["BDO"]
    assert ledger.registry.update_user("missing", actor=ACTOR, name="x") is None


def test_change_role_follows_hierarchy(ledger, seeded: SimpleNamespace, db_session) -> None:
    promoted = ledger.registry.change_role(
        seeded.analyst.id, "supervisor", actor=ACTOR, actor_role=UserRole.SUPER_ADMIN, reason="promotion"
    )

    assert promoted is not None and promoted.role is UserRole.SUPERVISOR
    entry = _last_entry(db_session, AuditLogType.ROLE_CHANGE)
    assert entry.old_value == {"role": "analyst"}
    assert entry.new_value == {"role": "supervisor"}

    with pytest.raises(RoleAssignmentError):
        ledger.registry.change_role(seeded.supervisor.id, UserRole.ADMIN, actor=ACTOR, actor_role=UserRole.ADMIN)
    with pytest.raises(RoleAssignmentError):
        ledger.registry.change_role(seeded.root.id, UserRole.ANALYST, actor=ACTOR, actor_role=UserRole.ADMIN)


def test_user_with_money_or_pending_work_cannot_be_deleted(ledger, seeded: SimpleNamespace, db_session) -> None:
    with pytest.raises(UserNotDeletableError):
        ledger.registry.delete_user(seeded.analyst.id, actor=ACTOR)

    db_session.add(
        Transaction(
            type=TransactionType.BUY,
            user_id=seeded.admin.id,
            user_name="Admin",
            usdt_amount=Decimal("1"),
            php_amount=Decimal("56"),
            rate=Decimal("56"),
            platform="Binance",
            bank="BDO",
            status=TransactionStatus.PENDING,
        )
    )
    db_session.flush()
    with pytest.raises(UserNotDeletableError):
        ledger.registry.delete_user(seeded.admin.id, actor=ACTOR)


def test_delete_user_without_balances(ledger, seeded: SimpleNamespace, db_session) -> None:
    supervisor_id = seeded.supervisor.id

    deleted = ledger.registry.delete_user(supervisor_id, actor=ACTOR, reason="left the company")

    assert deleted is not None
    assert db_session.get(User, supervisor_id) is None
    entry = _last_entry(db_session, AuditLogType.USER_DELETED)
    assert entry.target == supervisor_id
    assert entry.reason == "left the company"
    assert ledger.registry.delete_user("missing", actor=ACTOR) is None


def test_platform_lifecycle(ledger, seeded: SimpleNamespace) -> None:
    created = ledger.registry.add_platform("Bybit", actor=ACTOR, initial_balance=Decimal("12.3456789"))

    assert created.balance == Decimal("12.345679")
    with pytest.raises(DuplicateResourceError):
        ledger.registry.add_platform("Bybit", actor=ACTOR)
    with pytest.raises(PlatformNotEmptyError):
        ledger.registry.delete_platform("Binance", actor=ACTOR)

    assert ledger.registry.delete_platform("OKX", actor=ACTOR) is not None
    assert [item.name for item in ledger.registry.list_platforms()] == ["Binance", "Bybit"]
    assert ledger.registry.delete_platform("OKX", actor=ACTOR) is None


def test_bank_removal_unassigns_users(ledger, seeded: SimpleNamespace, db_session) -> None:
    ledger.balances.adjust_user_balance(seeded.admin.id, "BPI", Decimal("0"), "open account", ACTOR)

    with pytest.raises(BankInUseError):
        ledger.registry.delete_bank("BDO", actor=ACTOR)

    removed = ledger.registry.delete_bank("BPI", actor=ACTOR, reason="closed")

    assert removed is not None
    assert [item.name for item in ledger.registry.list_banks()] == ["BDO"]
    assert all("BPI" not in user.assigned_banks for user in ledger.registry.list_users())
    assert db_session.scalars(select(UserBankBalance).where(UserBankBalance.bank == "BPI")).first() is None
    entry = _last_entry(db_session, AuditLogType.BANK_DELETED)
    assert len(entry.old_value["assigned_users"]) == 4


def test_add_bank_rejects_duplicates(ledger, seeded: SimpleNamespace) -> None:
    ledger.registry.add_bank("GCash", actor=ACTOR)

    with pytest.raises(DuplicateResourceError):
        ledger.registry.add_bank("GCash", actor=ACTOR)
