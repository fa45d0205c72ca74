from __future__ import annotations

from types import SimpleNamespace

from fastapi.testclient import TestClient


def test_login_issues_tokens_and_opens_a_session(client: TestClient, seeded: SimpleNamespace) -> None:
    response = client.post("/api/auth/login", json={"email": "analyst@example.com", "password": "changeme"})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] > 0
    assert body["access_token"] and body["refresh_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["is_logged_in"] is True


def test_login_rejects_bad_input(client: TestClient, seeded: SimpleNamespace) -> None:
    malformed = client.post("/api/auth/login", json={"email": "analyst", "password": "changeme"})
    wrong = client.post("/api/auth/login", json={"email": "analyst@example.com", "password": "nope"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "changeme"})

    assert malformed.status_code == 422
    assert wrong.status_code == 401
    assert unknown.status_code == 401


def test_refresh_rotates_and_rejects_reuse(client: TestClient, seeded: SimpleNamespace) -> None:
    tokens = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "changeme"}).json()

    rotated = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    reused = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

    assert rotated.status_code == 200
    assert rotated.json()["refresh_token"] != tokens["refresh_token"]
    assert reused.status_code == 401


def test_access_token_cannot_refresh(client: TestClient, seeded: SimpleNamespace) -> None:
    tokens = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "changeme"}).json()

    response = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})

    assert response.status_code == 400


def test_logout_closes_the_session_and_revokes_refresh(client: TestClient, seeded: SimpleNamespace) -> None:
    tokens = client.post("/api/auth/login", json={"email": "supervisor@example.com", "password": "changeme"}).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = client.post("/api/auth/logout", headers=headers)

    assert response.status_code == 204
    assert client.get("/api/auth/me", headers=headers).json()["user"]["is_logged_in"] is False
    assert client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


def test_me_reports_role_features(client: TestClient, seeded: SimpleNamespace, login) -> None:
    analyst = client.get("/api/auth/me", headers=login("analyst@example.com")).json()
    root = client.get("/api/auth/me", headers=login("root@example.com")).json()

    assert analyst["user"]["role"] == "analyst"
    assert analyst["features"]["can_trade_for_others"] is False
    assert analyst["features"]["can_edit_users"] is False
    assert root["features"]["can_manage_config"] is True


def test_protected_routes_require_a_token(client: TestClient, seeded: SimpleNamespace) -> None:
    assert client.get("/api/auth/me").status_code in (401, 403)
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
