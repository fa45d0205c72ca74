from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

from fastapi.testclient import TestClient


def test_audit_log_lists_changes_with_filters(client: TestClient, seeded: SimpleNamespace, auth_headers) -> None:
    client.post("/api/admin/banks", json={"name": "Metrobank"}, headers=auth_headers)
    client.put(
        "/api/balances/platforms/OKX", json={"amount": "300", "reason": "top up"}, headers=auth_headers
    )

    everything = client.get("/api/audit-logs", headers=auth_headers)
    adjustments = client.get("/api/audit-logs", params={"type": "BALANCE_ADJUSTMENT"}, headers=auth_headers)
    by_target = client.get("/api/audit-logs", params={"target": "platform:OKX"}, headers=auth_headers)
    limited = client.get("/api/audit-logs", params={"limit": 1}, headers=auth_headers)

    assert everything.status_code == 200
    assert {item["type"] for item in everything.json()} == {"BANK_ADDED", "BALANCE_ADJUSTMENT"}
    [entry] = adjustments.json()
    assert entry["actor"] == "admin@example.com"
    assert entry["reason"] == "top up"
    assert Decimal(entry["old_value"]["amount"]) == Decimal("0")
    assert [item["id"] for item in by_target.json()] == [entry["id"]]
    assert len(limited.json()) == 1


def test_audit_log_requires_view_all_data(client: TestClient, seeded: SimpleNamespace, login) -> None:
    response = client.get("/api/audit-logs", headers=login("analyst@example.com"))

    assert response.status_code == 403


def test_hr_logs_track_sessions(client: TestClient, seeded: SimpleNamespace, login) -> None:
    analyst = login("analyst@example.com")
    supervisor = login("supervisor@example.com")
    client.post("/api/auth/logout", headers=analyst)

    logs = client.get("/api/hr-logs", headers=supervisor)
    filtered = client.get("/api/hr-logs", params={"user_id": seeded.analyst.id}, headers=supervisor)
    active = client.get("/api/hr-logs/active", headers=supervisor)

    assert logs.status_code == 200
    assert {item["user_name"] for item in logs.json()} == {"Analyst", "Supervisor"}
    [analyst_log] = filtered.json()
    assert analyst_log["logout_time"] is not None
    assert analyst_log["duration_seconds"] >= 0
    assert [item["email"] for item in active.json()] == ["supervisor@example.com"]


def test_hr_logs_require_permission(client: TestClient, seeded: SimpleNamespace, login) -> None:
    headers = login("analyst@example.com")

    assert client.get("/api/hr-logs", headers=headers).status_code == 403
    assert client.get("/api/hr-logs/active", headers=headers).status_code == 403
