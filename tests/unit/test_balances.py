from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from baryabazaar.models import (
    AuditLog,
    AuditLogType,
    Base,
    Platform,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from baryabazaar.services.balances import BalanceProjector, transaction_effect
from baryabazaar.services.errors import (
    BalanceConcurrencyError,
    BankNotAssignedError,
    MissingReasonError,
    NegativeBalanceError,
)
from baryabazaar.services.events import EventBus
from baryabazaar.services.ledger import TransactionInput

ACTOR = "admin"


def _transaction(type: TransactionType, status: TransactionStatus = TransactionStatus.COMPLETED) -> Transaction:
    return Transaction(
        type=type,
        user_id="u-1",
        usdt_amount=Decimal("10"),
        php_amount=Decimal("565"),
        platform="Binance",
        bank="BDO",
        status=status,
    )


def test_transaction_effect_signs() -> None:
    buy = transaction_effect(_transaction(TransactionType.BUY))
    sell = transaction_effect(_transaction(TransactionType.SELL))

    assert (buy.php_delta, buy.usdt_delta) == (Decimal("565"), Decimal("10"))
    assert (sell.php_delta, sell.usdt_delta) == (Decimal("-565"), Decimal("-10"))
    assert sell.inverted() == buy
    assert transaction_effect(_transaction(TransactionType.INTERNAL_TRANSFER)).is_empty
    assert transaction_effect(_transaction(TransactionType.BUY, TransactionStatus.PENDING)).is_empty


def test_adjust_user_balance_records_old_and_new_amounts(ledger, seeded: SimpleNamespace, db_session) -> None:
    user_id = seeded.analyst.id
    ledger.balances.adjust_user_balance(user_id, "BDO", Decimal("300"), "opening", ACTOR)

    row = ledger.balances.adjust_user_balance(user_id, "BDO", Decimal("500"), "correction", ACTOR)

    assert row is not None
    entry = db_session.scalars(
        select(AuditLog)
        .where(AuditLog.type == AuditLogType.BALANCE_ADJUSTMENT, AuditLog.reason == "correction")
    ).one()
    assert Decimal(entry.old_value["amount"]) == Decimal("300")
    assert Decimal(entry.new_value["amount"]) == Decimal("500")
    assert entry.actor == ACTOR
    assert ledger.balances.get_user_balances()[user_id]["BDO"] == Decimal("500")


def test_adjustments_require_reason_and_known_targets(ledger, seeded: SimpleNamespace) -> None:
    with pytest.raises(MissingReasonError):
        ledger.balances.adjust_user_balance(seeded.analyst.id, "BDO", Decimal("1"), "", ACTOR)
    assert ledger.balances.adjust_user_balance("missing", "BDO", Decimal("1"), "why", ACTOR) is None
    assert ledger.balances.adjust_company_usdt_balance("Kraken", Decimal("1"), "why", ACTOR) is None


def test_negative_adjustment_needs_explicit_override(ledger, seeded: SimpleNamespace, db_session) -> None:
    with pytest.raises(NegativeBalanceError):
        ledger.balances.adjust_company_usdt_balance("Binance", Decimal("-5"), "float", ACTOR)

    platform = ledger.balances.adjust_company_usdt_balance(
        "Binance", Decimal("-5"), "float", ACTOR, allow_negative=True
    )

    assert platform is not None
    assert platform.balance == Decimal("-5")
    entry = db_session.scalars(select(AuditLog).where(AuditLog.target == "platform:Binance")).one()
    assert entry.new_value["allow_negative"] is True


def test_adjusting_an_assigned_bank_without_a_row_opens_it(ledger, seeded: SimpleNamespace, db_session) -> None:
    user_id = seeded.analyst.id
    assert "BPI" not in ledger.balances.get_user_balances()[user_id]

    row = ledger.balances.adjust_user_balance(user_id, "BPI", Decimal("750"), "opening float", ACTOR, expected_version=0)

    assert row is not None
    assert row.amount == Decimal("750")
    entry = db_session.scalars(select(AuditLog).where(AuditLog.target == f"user:{user_id}:BPI")).one()
    assert Decimal(entry.old_value["amount"]) == Decimal("0")
    assert ledger.balances.get_user_balances()[user_id]["BPI"] == Decimal("750")


def test_unassigned_bank_is_rejected(ledger, seeded: SimpleNamespace) -> None:
    with pytest.raises(BankNotAssignedError):
        ledger.balances.adjust_user_balance(seeded.analyst.id, "Metrobank", Decimal("1"), "why", ACTOR)


def test_expected_version_guards_absolute_adjustments(ledger, seeded: SimpleNamespace) -> None:
    row = ledger.balances.get_balance_row(seeded.analyst.id, "BDO")
    assert row is not None
    current = row.lock_version
    before = REGISTRY.get_sample_value("ledger_balance_conflicts_total", {"resource": "user_bank_balance"}) or 0.0

    with pytest.raises(BalanceConcurrencyError):
        ledger.balances.adjust_user_balance(
            seeded.analyst.id, "BDO", Decimal("1"), "stale", ACTOR, expected_version=current - 1
        )
    updated = ledger.balances.adjust_user_balance(
        seeded.analyst.id, "BDO", Decimal("1"), "fresh", ACTOR, expected_version=current
    )
    created = ledger.balances.adjust_user_balance(
        seeded.analyst.id, "BPI", Decimal("2"), "first write", ACTOR, expected_version=0
    )

    after = REGISTRY.get_sample_value("ledger_balance_conflicts_total", {"resource": "user_bank_balance"})
    assert after == before + 1
    assert updated is not None and updated.lock_version == current + 1
    assert created is not None and created.amount == Decimal("2")


def test_concurrent_writers_conflict_instead_of_losing_updates(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False)
    with factory() as setup:
        setup.add(Platform(name="Binance", balance=Decimal("100")))
        setup.commit()

    first, second = factory(), factory()
    try:
        writer_a = BalanceProjector(first, bus=EventBus())
        writer_b = BalanceProjector(second, bus=EventBus())
        assert writer_a.get_platform_balances()["Binance"] == Decimal("100")
        assert writer_b.get_platform_balances()["Binance"] == Decimal("100")

        writer_a.shift_platform_balance("Binance", Decimal("10"), "deposit", "a")
        first.commit()

        with pytest.raises(BalanceConcurrencyError):
            writer_b.shift_platform_balance("Binance", Decimal("-5"), "withdrawal", "b")
        second.rollback()

        assert writer_b.get_platform_balances()["Binance"] == Decimal("110")
    finally:
        first.close()
        second.close()
        engine.dispose()


def test_rates_and_totals(ledger, seeded: SimpleNamespace) -> None:
    for kind, usdt, php in (
        (TransactionType.BUY, "100", "5600"),
        (TransactionType.BUY, "100", "5650"),
        (TransactionType.SELL, "50", "2875"),
    ):
        ledger.transactions.add_transaction(
            TransactionInput(kind, seeded.analyst.id, Decimal(usdt), Decimal(php), "OKX", "BDO"), ACTOR
        )

    assert ledger.balances.get_average_buy_rate() == Decimal("56.25")
    assert ledger.balances.get_average_sell_rate() == Decimal("57.5")
    assert ledger.balances.get_total_company_usdt() == Decimal("1150")


def test_reconcile_reports_rows_not_explained_by_transactions(ledger, seeded: SimpleNamespace) -> None:
    report = ledger.balances.reconcile()

    drift = {(item.kind, item.key): item for item in report.drifts}
    assert not report.is_consistent
    assert drift[("user_bank", f"{seeded.analyst.id}:BDO")].difference == Decimal("10000")
    assert drift[("platform", "Binance")].replayed == Decimal("0")
