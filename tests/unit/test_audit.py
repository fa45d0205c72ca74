from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from baryabazaar.models import AuditLogImmutableError, AuditLogType, TransactionType
from baryabazaar.services.audit import AuditLogFilters, AuditLogService, jsonable


def test_jsonable_converts_nested_values() -> None:
    value = {
        "amount": Decimal("10.50"),
        "type": TransactionType.SELL,
        "at": datetime(2024, 3, 18, tzinfo=timezone.utc),
        "items": (Decimal("1"), {2: "x"}),
    }

    assert jsonable(value) == {
        "amount": "10.50",
        "type": "SELL",
        "at": "2024-03-18T00:00:00+00:00",
        "items": ["1", {"2": "x"}],
    }


def test_record_and_filter(db_session) -> None:
    audit = AuditLogService(db_session)
    audit.record(type=AuditLogType.BANK_ADDED, actor="root", target="BDO", new_value={"name": "BDO"})
    audit.record(type=AuditLogType.BANK_ADDED, actor="admin", target="BPI", new_value={"name": "BPI"})
    audit.record(type=AuditLogType.CONFIG_UPDATED, actor="root", target="system_settings")

    assert audit.count() == 3
    assert len(audit.list_entries(AuditLogFilters(type=AuditLogType.BANK_ADDED))) == 2
    assert [entry.target for entry in audit.list_entries(AuditLogFilters(actor="admin"))] == ["BPI"]
    assert len(audit.list_entries(AuditLogFilters(limit=1))) == 1


def test_entries_cannot_be_changed_or_removed(db_session) -> None:
    audit = AuditLogService(db_session)
    entry = audit.record(type=AuditLogType.BANK_ADDED, actor="root", target="BDO")
    db_session.commit()

    entry.reason = "rewrite history"
    with pytest.raises(AuditLogImmutableError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(entry)
    with pytest.raises(AuditLogImmutableError):
        db_session.flush()
    db_session.rollback()

    assert audit.count() == 1
