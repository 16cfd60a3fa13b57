"""
tests/test_csrf.py — Session CSRF Token Tests
==============================================
"""

from __future__ import annotations

import pytest

from conftest import STRONG_PASSWORD, auth_headers, fetch_csrf, make_user


class TestCsrfToken:
    def test_token_is_stable_within_a_session(self, client):
        first = fetch_csrf(client)
        assert len(first) == 64
        assert fetch_csrf(client) == first

    def test_sessions_get_distinct_tokens(self, client):
        first = fetch_csrf(client)
        client.cookies.clear()
        assert fetch_csrf(client) != first


class TestCsrfProtection:
    def test_missing_token_rejected(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        fetch_csrf(client)
        resp = client.post("/api/battlepass/purchase", headers=auth_headers(user))
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_invalid"

    def test_wrong_token_rejected(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        fetch_csrf(client)
        resp = client.post("/api/battlepass/purchase", headers=auth_headers(user, "f" * 64))
        assert resp.status_code == 403

    def test_non_ascii_header_token_rejected(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        fetch_csrf(client)
        headers = auth_headers(user)
        headers["X-CSRF-Token"] = ("é" * 64).encode("latin-1")
        resp = client.post("/api/battlepass/purchase", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_invalid"

    @pytest.mark.parametrize(
        "body",
        [
            r'{"level": 1, "track": "free", "_csrf": "\u2603"}',
            r'{"level": 1, "track": "free", "_csrf": "\ud800"}',
        ],
    )
    def test_non_ascii_body_token_rejected(self, client, db_engine, battlepass_id, body):
        user = make_user(db_engine)
        fetch_csrf(client)
        headers = auth_headers(user)
        headers["content-type"] = "application/json"
        resp = client.post("/api/battlepass/claim-reward", content=body, headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_invalid"

    def test_deeply_nested_body_rejected(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        fetch_csrf(client)
        headers = auth_headers(user)
        headers["content-type"] = "application/json"
        resp = client.post("/api/battlepass/purchase", content=b"[" * 100_000, headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_invalid"

    def test_token_without_session_rejected(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        resp = client.post("/api/battlepass/purchase", headers=auth_headers(user, "f" * 64))
        assert resp.status_code == 403

    def test_header_token_accepted(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        csrf = fetch_csrf(client)
        resp = client.post("/api/battlepass/purchase", headers=auth_headers(user, csrf))
        assert resp.status_code == 200

    def test_body_token_accepted(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        csrf = fetch_csrf(client)
        resp = client.post(
            "/api/battlepass/claim-reward",
            json={"level": 1, "track": "free", "_csrf": csrf},
            headers=auth_headers(user),
        )
        assert resp.status_code == 200

    def test_checked_before_authentication(self, client):
        resp = client.post("/api/battlepass/purchase")
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_invalid"

    def test_login_and_register_exempt(self, client, db_engine):
        make_user(db_engine, email="csrf@example.com")
        login = client.post(
            "/api/auth/login", json={"email": "csrf@example.com", "password": STRONG_PASSWORD},
        )
        register = client.post(
            "/api/auth/register",
            json={"username": "newbie", "email": "newbie@example.com", "password": STRONG_PASSWORD},
        )
        assert login.status_code == 200
        assert register.status_code == 201

    def test_reads_not_checked(self, client, db_engine, battlepass_id):
        user = make_user(db_engine)
        assert client.get("/api/battlepass/progress", headers=auth_headers(user)).status_code == 200
