"""
skincase.services.user_service — Accounts, Bans & the Xcoins Ledger
====================================================================

Shared service module for account operations.  Balance changes are single
conditional ``UPDATE`` statements so concurrent credits/debits never lose
writes and a debit can never drive a balance negative; every change is
mirrored into ``xcoin_transactions``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from passlib.context import CryptContext
from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skincase.constants import STARTING_XCOINS
from skincase.database.models import TransactionType, User, XcoinTransaction, as_utc
from skincase.errors import Conflict, InsufficientFunds, NotFound

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
def create_user(
    engine: Engine,
    *,
    username: str,
    email: str,
    password: str,
    xcoins: int = STARTING_XCOINS,
    is_admin: bool = False,
    permissions: list[str] | tuple[str, ...] = (),
) -> User:
    """Insert a new account.  Raises :class:`Conflict` on duplicate name/email."""
    with Session(engine, expire_on_commit=False) as session:
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            xcoins=xcoins,
            is_admin=is_admin,
            permissions=list(permissions),
        )
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise Conflict("Username or email is already registered.")
        session.refresh(user)
        logger.info("Registered user %s (%s)", user.id, username)
        return user


def authenticate(engine: Engine, email: str, password: str) -> User | None:
    """Return the user if *password* matches, else None.  Stamps last login."""
    with Session(engine, expire_on_commit=False) as session:
        user = session.scalar(select(User).where(User.email == email))
        if user is None or not verify_password(password, user.password_hash):
            return None
        user.last_login_at = datetime.now(UTC)
        session.commit()
        return user


def get_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


def load_active_user(engine: Engine, user_id: str, *, now: datetime | None = None) -> User | None:
    """Fetch a user for request authentication, lifting an expired ban."""
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        expires = as_utc(user.ban_expires)
        if user.is_banned and expires is not None and expires <= now:
            user.is_banned = False
            user.ban_reason = None
            user.ban_expires = None
            session.commit()
            logger.info("Ban on user %s expired and was lifted", user_id)
        return user


# ---------------------------------------------------------------------------
# Bans
# ---------------------------------------------------------------------------
def ban_user(
    engine: Engine,
    user_id: str,
    *,
    reason: str,
    expires_at: datetime | None,
    actor_id: str,
) -> User:
    with Session(engine, expire_on_commit=False) as session:
        user = get_user(session, user_id)
        user.is_banned = True
        user.ban_reason = reason
        user.ban_expires = expires_at
        session.commit()
    logger.info("User %s banned by %s until %s: %s", user_id, actor_id, expires_at, reason)
    return user


def unban_user(engine: Engine, user_id: str, *, actor_id: str) -> User:
    with Session(engine, expire_on_commit=False) as session:
        user = get_user(session, user_id)
        user.is_banned = False
        user.ban_reason = None
        user.ban_expires = None
        session.commit()
    logger.info("User %s unbanned by %s", user_id, actor_id)
    return user


# ---------------------------------------------------------------------------
# Xcoins ledger
# ---------------------------------------------------------------------------
def apply_xcoins(
    session: Session,
    user_id: str,
    delta: int,
    *,
    type_: TransactionType,
    description: str,
    metadata: dict | None = None,
) -> int:
    """Atomically add *delta* (may be negative) to the balance.

    Debits are conditional on ``xcoins >= -delta``; when that fails the
    balance is untouched and :class:`InsufficientFunds` is raised.  The
    caller owns the transaction.  Returns the new balance.
    """
    stmt = update(User).where(User.id == user_id).values(xcoins=User.xcoins + delta)
    if delta < 0:
        stmt = stmt.where(User.xcoins >= -delta)
    result = session.execute(stmt.execution_options(synchronize_session=False))

    if result.rowcount == 0:
        current = session.scalar(select(User.xcoins).where(User.id == user_id))
        if current is None:
            raise NotFound("User not found.")
        raise InsufficientFunds(
            f"This costs {-delta} Xcoins; you have {current}.",
            required=-delta,
            current=current,
        )

    balance = session.scalar(select(User.xcoins).where(User.id == user_id))
    session.add(XcoinTransaction(
        user_id=user_id,
        type=type_.value,
        amount=delta,
        balance_after=balance,
        description=description,
        metadata_=metadata,
    ))
    return balance


def credit_xcoins(
    engine: Engine,
    user_id: str,
    amount: int,
    *,
    actor_id: str,
    reason: str = "",
) -> int:
    """Admin adjustment.  Returns the new balance."""
    with Session(engine) as session:
        balance = apply_xcoins(
            session,
            user_id,
            amount,
            type_=TransactionType.ADMIN_ADJUSTMENT,
            description=reason or "Admin credit",
            metadata={"admin_id": actor_id},
        )
        session.commit()
    logger.info("Admin %s credited %d Xcoins to %s", actor_id, amount, user_id)
    return balance


def total_spent(session: Session, user_id: str) -> int:
    """Xcoins debited from the ledger so far, as a positive number."""
    spent = session.scalar(
        select(func.coalesce(func.sum(XcoinTransaction.amount), 0)).where(
            XcoinTransaction.user_id == user_id, XcoinTransaction.amount < 0
        )
    )
    return -int(spent or 0)


def get_balance(engine: Engine, user_id: str) -> dict:
    """Current balance and lifetime Xcoins spent."""
    with Session(engine) as session:
        user = get_user(session, user_id)
        return {"xcoins": user.xcoins, "totalSpent": total_spent(session, user_id)}


def list_transactions(
    engine: Engine, user_id: str, *, page: int = 1, limit: int = 20
) -> tuple[int, list[XcoinTransaction]]:
    """Return ``(total, page_rows)`` of the user's ledger, newest first."""
    with Session(engine, expire_on_commit=False) as session:
        total = session.scalar(
            select(func.count())
            .select_from(XcoinTransaction)
            .where(XcoinTransaction.user_id == user_id)
        )
        rows = session.scalars(
            select(XcoinTransaction)
            .where(XcoinTransaction.user_id == user_id)
            .order_by(XcoinTransaction.created_at.desc(), XcoinTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    return total or 0, list(rows)


def transaction_stats(engine: Engine, user_id: str) -> dict:
    """Per-type counts and sums over the whole ledger."""
    with Session(engine) as session:
        user = get_user(session, user_id)
        rows = session.execute(
            select(
                XcoinTransaction.type,
                func.count(XcoinTransaction.id),
                func.sum(XcoinTransaction.amount),
            )
            .where(XcoinTransaction.user_id == user_id)
            .group_by(XcoinTransaction.type)
            .order_by(XcoinTransaction.type)
        ).all()
        return {
            "totalSpent": total_spent(session, user_id),
            "currentBalance": user.xcoins,
            "statsByType": [
                {"type": type_, "count": count, "totalAmount": int(amount or 0)}
                for type_, count, amount in rows
            ],
        }


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def user_to_dict(user: User, *, private: bool = False) -> dict:
    """Public profile; *private* adds the owner-only fields."""
    created = as_utc(user.created_at)
    out = {
        "id": user.id,
        "username": user.username,
        "isAdmin": bool(user.is_admin),
        "createdAt": created.isoformat() if created else None,
    }
    if private:
        expires = as_utc(user.ban_expires)
        last_login = as_utc(user.last_login_at)
        out.update({
            "email": user.email,
            "xcoins": user.xcoins,
            "permissions": list(user.permissions or ()),
            "isBanned": bool(user.is_banned),
            "banReason": user.ban_reason,
            "banExpires": expires.isoformat() if expires else None,
            "lastLoginAt": last_login.isoformat() if last_login else None,
        })
    return out


def transaction_to_dict(tx: XcoinTransaction) -> dict:
    created = as_utc(tx.created_at)
    return {
        "id": tx.id,
        "type": tx.type,
        "amount": tx.amount,
        "balanceAfter": tx.balance_after,
        "description": tx.description,
        "metadata": tx.metadata_ or {},
        "createdAt": created.isoformat() if created else None,
    }
