from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from baryabazaar.models import AuditLog, AuditLogType, TransactionStatus, TransactionType
from baryabazaar.services.balances import replay_balances
from baryabazaar.services.errors import InvalidTransactionError, MissingReasonError, NegativeBalanceError
from baryabazaar.services.events import TRANSACTION_CREATED, DomainEvent
from baryabazaar.services.exchange_rates import SOURCE_COINGECKO, SOURCE_FALLBACK, ReferenceRate
from baryabazaar.services.ledger import TransactionFilters, TransactionInput, TransactionPatch
from baryabazaar.services.periods import Period

ACTOR = "admin@example.com"


def _buy(user_id: str, usdt: str = "100", php: str = "5600", **extra: object) -> TransactionInput:
    return TransactionInput(
        type=TransactionType.BUY,
        user_id=user_id,
        usdt_amount=Decimal(usdt),
        php_amount=Decimal(php),
        platform="Binance",
        bank="BDO",
        **extra,
    )


def _sell(user_id: str, usdt: str = "50", php: str = "2850") -> TransactionInput:
    return TransactionInput(
        type=TransactionType.SELL,
        user_id=user_id,
        usdt_amount=Decimal(usdt),
        php_amount=Decimal(php),
        platform="Binance",
        bank="BDO",
    )


def _entries(session, type: AuditLogType) -> list[AuditLog]:
    return list(session.scalars(select(AuditLog).where(AuditLog.type == type)))


def test_add_transaction_applies_both_legs(ledger, seeded: SimpleNamespace, db_session) -> None:
    transaction = ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)

    assert transaction.status is TransactionStatus.COMPLETED
    assert transaction.rate == Decimal("56.000000")
    assert transaction.user_name == "Admin"
    assert ledger.balances.get_user_balances()[seeded.admin.id]["BDO"] == Decimal("5600")
    assert ledger.balances.get_platform_balances()["Binance"] == Decimal("1100")

    created = _entries(db_session, AuditLogType.TRANSACTION_CREATED)
    assert len(created) == 1
    assert created[0].target == transaction.id
    assert created[0].new_value["usdt_amount"] == "100.000000"


def test_add_transaction_rejects_unknown_user_and_empty_trade(ledger, seeded: SimpleNamespace) -> None:
    with pytest.raises(InvalidTransactionError):
        ledger.transactions.add_transaction(_buy("missing"), ACTOR)
    with pytest.raises(InvalidTransactionError):
        ledger.transactions.add_transaction(_buy(seeded.admin.id, usdt="0", php="0"), ACTOR)


def test_sell_cannot_overdraw_without_override(ledger, seeded: SimpleNamespace) -> None:
    with pytest.raises(NegativeBalanceError):
        ledger.transactions.add_transaction(_sell(seeded.admin.id), ACTOR)

    transaction = ledger.transactions.add_transaction(_sell(seeded.analyst.id), ACTOR)
    assert transaction.type is TransactionType.SELL
    assert ledger.balances.get_user_balances()[seeded.analyst.id]["BDO"] == Decimal("7150")
    assert ledger.balances.get_platform_balances()["Binance"] == Decimal("950")


def test_update_moves_balances_and_writes_one_audit_entry(ledger, seeded: SimpleNamespace, db_session) -> None:
    transaction = ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)

    updated = ledger.transactions.update_transaction(
        transaction.id,
        TransactionPatch(php_amount=Decimal("5700"), bank="BPI"),
        "typo in amount",
        ACTOR,
    )

    assert updated is not None
    assert updated.rate == Decimal("57.000000")
    balances = ledger.balances.get_user_balances()[seeded.admin.id]
    assert balances["BDO"] == Decimal("0")
    assert balances["BPI"] == Decimal("5700")

    edits = _entries(db_session, AuditLogType.TRANSACTION_EDIT)
    assert len(edits) == 1
    assert edits[0].reason == "typo in amount"
    assert edits[0].old_value["php_amount"] == "5600.00"
    assert edits[0].old_value["bank"] == "BDO"
    assert edits[0].new_value["php_amount"] == "5700.00"
    assert edits[0].new_value["bank"] == "BPI"


def test_update_and_delete_require_reason(ledger, seeded: SimpleNamespace) -> None:
    transaction = ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)

    with pytest.raises(MissingReasonError):
        ledger.transactions.update_transaction(transaction.id, TransactionPatch(note="x"), "  ", ACTOR)
    with pytest.raises(MissingReasonError):
        ledger.transactions.delete_transaction(transaction.id, "", ACTOR)


def test_delete_reverses_effect_and_is_audited(ledger, seeded: SimpleNamespace, db_session) -> None:
    transaction = ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)
    transaction_id = transaction.id

    deleted = ledger.transactions.delete_transaction(transaction_id, "duplicate entry", ACTOR)

    assert deleted is not None
    assert ledger.transactions.get_transaction(transaction_id) is None
    assert ledger.balances.get_user_balances()[seeded.admin.id]["BDO"] == Decimal("0")
    assert ledger.balances.get_platform_balances()["Binance"] == Decimal("1000")

    removals = _entries(db_session, AuditLogType.TRANSACTION_DELETE)
    assert len(removals) == 1
    assert removals[0].old_value["id"] == transaction_id
    assert removals[0].new_value is None


def test_missing_transaction_returns_none(ledger, seeded: SimpleNamespace) -> None:
    assert ledger.transactions.update_transaction("nope", TransactionPatch(note="x"), "reason", ACTOR) is None
    assert ledger.transactions.delete_transaction("nope", "reason", ACTOR) is None


def test_list_is_newest_first_and_filterable(ledger, seeded: SimpleNamespace, clock) -> None:
    first = ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)
    clock.advance(minutes=5)
    second = ledger.transactions.add_transaction(_sell(seeded.analyst.id), ACTOR)

    assert [item.id for item in ledger.transactions.list_transactions()] == [second.id, first.id]
    only_sells = ledger.transactions.list_transactions(TransactionFilters(type=TransactionType.SELL))
    assert [item.id for item in only_sells] == [second.id]
    limited = ledger.transactions.list_transactions(TransactionFilters(limit=1))
    assert len(limited) == 1


def test_period_queries_use_local_calendar_boundaries(ledger, seeded: SimpleNamespace, clock) -> None:
    monday = ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)
    clock.advance(days=1)
    tuesday = ledger.transactions.add_transaction(_sell(seeded.admin.id), ACTOR)

    today = ledger.transactions.get_transactions_by_period(Period.TODAY)
    week = ledger.transactions.get_transactions_by_period(Period.WEEK)

    assert [item.id for item in today] == [tuesday.id]
    assert [item.id for item in week] == [tuesday.id, monday.id]
    clock.advance(days=7)
    assert ledger.transactions.get_transactions_by_period(Period.WEEK) == []
    assert len(ledger.transactions.get_transactions_by_period(Period.MONTH)) == 2


def test_replay_reproduces_projected_balance(ledger, seeded: SimpleNamespace, clock) -> None:
    admin_id = seeded.admin.id
    for step in (_buy(admin_id), _buy(admin_id, "20", "1130"), _sell(admin_id), _sell(admin_id, "10", "575")):
        ledger.transactions.add_transaction(step, ACTOR)
        clock.advance(minutes=1)

    replayed = replay_balances(ledger.transactions.list_transactions())
    stored = ledger.balances.get_user_balances()[admin_id]

    assert replayed.user_banks[(admin_id, "BDO")] == stored["BDO"] == Decimal("3305")


def test_events_are_published_only_after_commit(ledger, seeded: SimpleNamespace, event_bus, db_session) -> None:
    received: list[DomainEvent] = []
    event_bus.subscribe(TRANSACTION_CREATED, received.append)

    ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)
    assert received == []
    db_session.commit()
    assert [event.name for event in received] == [TRANSACTION_CREATED]

    ledger.transactions.add_transaction(_buy(seeded.admin.id), ACTOR)
    db_session.rollback()
    db_session.commit()
    assert len(received) == 1


def test_trades_are_checked_against_the_stored_reference_rate(ledger, seeded: SimpleNamespace, clock) -> None:
    form = {"user_id": seeded.analyst.id, "platform": "Binance", "bank": "BDO", "rate": "62", "usdt_amount": "10", "php_amount": "620"}
    before = ledger.validate_trade(form, TransactionType.BUY)
    assert ledger.reference_rate().source == SOURCE_FALLBACK
    assert "rate_deviation" in [item.code for item in before.warnings]

    stored = ReferenceRate(Decimal("61.8"), SOURCE_COINGECKO, clock() + timedelta(minutes=1))
    assert ledger.system_settings.record_reference_rate(stored) is True
    assert ledger.system_settings.record_reference_rate(
        ReferenceRate(Decimal("50"), SOURCE_COINGECKO, clock())
    ) is False

    assert ledger.reference_rate().rate == Decimal("61.8")
    after = ledger.validate_trade(form, TransactionType.BUY)
    assert "rate_deviation" not in [item.code for item in after.warnings]
