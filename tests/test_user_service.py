"""
tests/test_user_service.py — Accounts, Ledger & Notification Tests
===================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import STRONG_PASSWORD, make_user
from skincase.database.models import (
    Notification,
    NotificationType,
    TransactionType,
    User,
    XcoinTransaction,
)
from skincase.errors import Conflict, InsufficientFunds, NotFound
from skincase.services import notification_service as ns
from skincase.services import user_service as us


# ===========================================================================
# Accounts
# ===========================================================================
class TestAccounts:
    def test_new_account_defaults(self, db_engine):
        user = make_user(db_engine)
        assert user.xcoins == 1000
        assert not user.is_admin
        assert not user.is_banned
        assert user.permissions == []
        assert len(user.id) == 24

    def test_password_is_hashed(self, db_engine):
        user = make_user(db_engine)
        assert user.password_hash != STRONG_PASSWORD
        assert us.verify_password(STRONG_PASSWORD, user.password_hash)

    def test_duplicate_email_conflicts(self, db_engine):
        make_user(db_engine, email="dup@example.com")
        with pytest.raises(Conflict):
            make_user(db_engine, email="dup@example.com")

    def test_duplicate_username_conflicts(self, db_engine):
        make_user(db_engine, username="taken")
        with pytest.raises(Conflict):
            make_user(db_engine, username="taken")

    def test_authenticate(self, db_engine):
        user = make_user(db_engine, email="login@example.com")
        found = us.authenticate(db_engine, "login@example.com", STRONG_PASSWORD)
        assert found.id == user.id
        assert found.last_login_at is not None

    def test_authenticate_wrong_password(self, db_engine):
        make_user(db_engine, email="login@example.com")
        assert us.authenticate(db_engine, "login@example.com", "Wr0ng!Pass") is None

    def test_authenticate_unknown_email(self, db_engine):
        assert us.authenticate(db_engine, "ghost@example.com", STRONG_PASSWORD) is None


# ===========================================================================
# Bans
# ===========================================================================
class TestBans:
    def test_ban_and_unban(self, db_engine):
        user = make_user(db_engine)
        banned = us.ban_user(db_engine, user.id, reason="cheating", expires_at=None, actor_id="a")
        assert banned.is_banned and banned.ban_reason == "cheating"
        lifted = us.unban_user(db_engine, user.id, actor_id="a")
        assert not lifted.is_banned and lifted.ban_reason is None

    def test_expired_ban_is_lifted_on_load(self, db_engine):
        user = make_user(db_engine)
        past = datetime.now(UTC) - timedelta(minutes=1)
        us.ban_user(db_engine, user.id, reason="spam", expires_at=past, actor_id="a")
        loaded = us.load_active_user(db_engine, user.id)
        assert not loaded.is_banned
        assert loaded.ban_expires is None

    def test_running_ban_is_kept(self, db_engine):
        user = make_user(db_engine)
        future = datetime.now(UTC) + timedelta(hours=1)
        us.ban_user(db_engine, user.id, reason="spam", expires_at=future, actor_id="a")
        assert us.load_active_user(db_engine, user.id).is_banned

    def test_permanent_ban_is_kept(self, db_engine):
        user = make_user(db_engine)
        us.ban_user(db_engine, user.id, reason="fraud", expires_at=None, actor_id="a")
        assert us.load_active_user(db_engine, user.id).is_banned

    def test_ban_unknown_user(self, db_engine):
        with pytest.raises(NotFound):
            us.ban_user(db_engine, "a" * 24, reason="x", expires_at=None, actor_id="a")

    def test_load_unknown_user_is_none(self, db_engine):
        assert us.load_active_user(db_engine, "a" * 24) is None


# ===========================================================================
# Xcoins ledger
# ===========================================================================
class TestXcoins:
    def test_credit_records_ledger_entry(self, db_engine):
        user = make_user(db_engine)
        balance = us.credit_xcoins(db_engine, user.id, 250, actor_id="admin1", reason="event")
        assert balance == 1250
        with Session(db_engine) as session:
            tx = session.scalar(select(XcoinTransaction).where(XcoinTransaction.user_id == user.id))
        assert tx.type == TransactionType.ADMIN_ADJUSTMENT
        assert (tx.amount, tx.balance_after) == (250, 1250)
        assert tx.description == "event"
        assert tx.metadata_ == {"admin_id": "admin1"}

    def test_debit_cannot_go_negative(self, db_engine):
        user = make_user(db_engine, xcoins=10)
        with Session(db_engine) as session:
            with pytest.raises(InsufficientFunds):
                us.apply_xcoins(
                    session, user.id, -11,
                    type_=TransactionType.PURCHASE, description="too much",
                )
            session.rollback()
        with Session(db_engine) as session:
            assert session.get(User, user.id).xcoins == 10

    def test_exact_debit_reaches_zero(self, db_engine):
        user = make_user(db_engine, xcoins=10)
        with Session(db_engine) as session:
            balance = us.apply_xcoins(
                session, user.id, -10, type_=TransactionType.PURCHASE, description="all in",
            )
            session.commit()
        assert balance == 0

    def test_unknown_user(self, db_engine):
        with pytest.raises(NotFound):
            us.credit_xcoins(db_engine, "b" * 24, 5, actor_id="admin")


# ===========================================================================
# Profile views
# ===========================================================================
class TestUserToDict:
    def test_public_view_hides_private_fields(self, db_engine):
        user = make_user(db_engine)
        view = us.user_to_dict(user)
        assert set(view) == {"id", "username", "isAdmin", "createdAt"}

    def test_private_view(self, db_engine):
        user = make_user(db_engine, permissions=["xcoins.manage"])
        view = us.user_to_dict(user, private=True)
        assert view["email"] == user.email
        assert view["xcoins"] == 1000
        assert view["permissions"] == ["xcoins.manage"]
        assert view["isBanned"] is False
        assert "password_hash" not in view


# ===========================================================================
# Notifications
# ===========================================================================
def _notify(engine, user_id: str, title: str, *, now: datetime | None = None) -> None:
    with Session(engine) as session:
        ns.create_notification(
            session, user_id,
            type_=NotificationType.ADMIN_MESSAGE,
            title=title, message="hello", now=now,
        )
        session.commit()


class TestNotifications:
    def test_expires_after_thirty_days(self, db_engine):
        user = make_user(db_engine)
        now = datetime.now(UTC)
        _notify(db_engine, user.id, "hi", now=now)
        with Session(db_engine) as session:
            note = session.scalar(select(Notification))
        expires = note.expires_at.replace(tzinfo=UTC) if note.expires_at.tzinfo is None else note.expires_at
        assert expires - now == timedelta(days=30)

    def test_expired_notifications_hidden(self, db_engine):
        user = make_user(db_engine)
        _notify(db_engine, user.id, "old", now=datetime.now(UTC) - timedelta(days=31))
        _notify(db_engine, user.id, "fresh")
        total, rows = ns.list_notifications(db_engine, user.id)
        assert total == 1
        assert [r.title for r in rows] == ["fresh"]

    def test_pagination(self, db_engine):
        user = make_user(db_engine)
        for i in range(5):
            _notify(db_engine, user.id, f"n{i}")
        total, rows = ns.list_notifications(db_engine, user.id, page=2, limit=2)
        assert total == 5
        assert len(rows) == 2

    def test_mark_read_only_own(self, db_engine):
        owner = make_user(db_engine)
        other = make_user(db_engine)
        _notify(db_engine, owner.id, "mine")
        _, rows = ns.list_notifications(db_engine, owner.id)
        note_id = rows[0].id
        assert not ns.mark_read(db_engine, other.id, note_id)
        assert ns.mark_read(db_engine, owner.id, note_id)
        total, _ = ns.list_notifications(db_engine, owner.id, unread_only=True)
        assert total == 0

    def test_long_text_truncated(self, db_engine):
        user = make_user(db_engine)
        _notify(db_engine, user.id, "t" * 300)
        _, rows = ns.list_notifications(db_engine, user.id)
        assert len(rows[0].title) == 100

    def test_to_dict(self, db_engine):
        user = make_user(db_engine)
        _notify(db_engine, user.id, "hi")
        _, rows = ns.list_notifications(db_engine, user.id)
        view = ns.notification_to_dict(rows[0])
        assert view["type"] == "admin_message"
        assert view["priority"] == "medium"
        assert view["isRead"] is False
