"""
tests/test_permissions.py — Authentication & Permission Gate Tests
===================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from conftest import auth_headers, fetch_csrf, make_user
from skincase.api.deps import JWT_ALGORITHM, JWT_SECRET
from skincase.api.permissions import AuthenticatedPrincipal, check_permissions, evaluate_access
from skincase.constants import PERM_BAN_USERS, PERM_MANAGE_XCOINS
from skincase.errors import AccountSuspended, InsufficientPermissions, Unauthenticated
from skincase.services.user_service import ban_user


def _principal(**overrides) -> AuthenticatedPrincipal:
    fields = {"id": "a" * 24, "username": "player"}
    fields.update(overrides)
    return AuthenticatedPrincipal(**fields)


# ===========================================================================
# Gate rules
# ===========================================================================
class TestEvaluateAccess:
    def test_missing_principal(self):
        with pytest.raises(Unauthenticated):
            evaluate_access(None)

    def test_plain_user_without_requirements(self):
        principal = _principal()
        assert evaluate_access(principal) is principal

    def test_banned_user_rejected_with_details(self):
        expires = datetime(2026, 12, 1, tzinfo=UTC)
        principal = _principal(is_banned=True, ban_reason="cheating", ban_expires=expires)
        with pytest.raises(AccountSuspended) as exc_info:
            evaluate_access(principal)
        payload = exc_info.value.to_payload()
        assert payload["error"] == "account_suspended"
        assert payload["banReason"] == "cheating"
        assert payload["banExpires"] == expires.isoformat()

    def test_ban_overrides_admin(self):
        with pytest.raises(AccountSuspended):
            evaluate_access(_principal(is_admin=True, is_banned=True), [PERM_BAN_USERS])

    def test_missing_permission(self):
        with pytest.raises(InsufficientPermissions) as exc_info:
            evaluate_access(_principal(), [PERM_BAN_USERS])
        assert exc_info.value.to_payload()["required"] == [PERM_BAN_USERS]

    def test_any_listed_permission_suffices(self):
        principal = _principal(permissions=frozenset({PERM_MANAGE_XCOINS}))
        assert evaluate_access(principal, [PERM_BAN_USERS, PERM_MANAGE_XCOINS]) is principal

    def test_admin_passes_any_requirement(self):
        principal = _principal(is_admin=True)
        assert evaluate_access(principal, [PERM_BAN_USERS, "anything.else"]) is principal

    def test_gate_rejects_unknown_permission_names(self):
        with pytest.raises(ValueError, match="users.delete"):
            check_permissions(PERM_BAN_USERS, "users.delete")


# ===========================================================================
# Through the API
# ===========================================================================
class TestPrincipalResolution:
    def test_no_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthenticated"

    def test_malformed_header(self, client):
        resp = client.get("/api/auth/me", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_forged_token(self, client, db_engine):
        user = make_user(db_engine)
        token = jwt.encode({"sub": user.id}, "not-the-secret-" + "z" * 40, algorithm=JWT_ALGORITHM)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_expired_token(self, client, db_engine):
        user = make_user(db_engine)
        past = datetime.now(UTC) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": user.id, "iat": past, "exp": past + timedelta(hours=1)},
            JWT_SECRET, algorithm=JWT_ALGORITHM,
        )
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_deleted_account(self, client):
        token = jwt.encode({"sub": "c" * 24}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_valid_token(self, client, db_engine):
        user = make_user(db_engine)
        resp = client.get("/api/auth/me", headers=auth_headers(user))
        assert resp.status_code == 200
        assert resp.json()["id"] == user.id


class TestBansApi:
    def test_banned_user_gets_suspension_details(self, client, db_engine):
        user = make_user(db_engine)
        expires = datetime.now(UTC) + timedelta(days=1)
        ban_user(db_engine, user.id, reason="cheating", expires_at=expires, actor_id="admin")
        resp = client.get("/api/auth/me", headers=auth_headers(user))
        assert resp.status_code == 403
        body = resp.json()
        assert body["error"] == "account_suspended"
        assert body["banReason"] == "cheating"
        assert body["banExpires"].startswith(expires.date().isoformat())

    def test_expired_ban_lifted_on_request(self, client, db_engine):
        user = make_user(db_engine)
        past = datetime.now(UTC) - timedelta(seconds=5)
        ban_user(db_engine, user.id, reason="spam", expires_at=past, actor_id="admin")
        resp = client.get("/api/auth/me", headers=auth_headers(user))
        assert resp.status_code == 200
        assert resp.json()["isBanned"] is False


class TestPermissionApi:
    def test_user_without_permission_rejected(self, client, db_engine):
        user = make_user(db_engine)
        target = make_user(db_engine)
        csrf = fetch_csrf(client)
        resp = client.post(
            f"/api/admin/users/{target.id}/xcoins",
            json={"amount": 10},
            headers=auth_headers(user, csrf),
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "insufficient_permissions"

    def test_granted_permission_allows(self, client, db_engine):
        user = make_user(db_engine, permissions=[PERM_MANAGE_XCOINS])
        target = make_user(db_engine)
        csrf = fetch_csrf(client)
        resp = client.post(
            f"/api/admin/users/{target.id}/xcoins",
            json={"amount": 10},
            headers=auth_headers(user, csrf),
        )
        assert resp.status_code == 200
        assert resp.json() == {"userId": target.id, "balance": 1010}

    def test_admin_allowed_without_explicit_permission(self, client, db_engine):
        admin = make_user(db_engine, is_admin=True)
        target = make_user(db_engine)
        csrf = fetch_csrf(client)
        resp = client.post(
            f"/api/admin/users/{target.id}/ban",
            json={"reason": "smurfing", "durationHours": 2},
            headers=auth_headers(admin, csrf),
        )
        assert resp.status_code == 200
        assert resp.json()["isBanned"] is True
