"""
skincase.api.permissions — Authentication & Permission Gate
============================================================

Resolves the caller from an ``Authorization: Bearer <jwt>`` header and
decides access:

1. No principal → 401 ``unauthenticated``.
2. Banned principal → 403 ``account_suspended`` with ``banReason`` /
   ``banExpires``.  Applies to every gated route and overrides admin.
3. Required permissions (if any) → allowed when the principal holds at
   least one of them, or is an admin; else 403 ``insufficient_permissions``.

Expired bans are lifted when the principal is loaded, so a ban whose
``ban_expires`` has passed never reaches rule 2.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated

import jwt
from fastapi import Depends, Header, Request
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from skincase.api.deps import JWT_ALGORITHM, JWT_SECRET, get_engine
from skincase.constants import ALL_PERMISSIONS
from skincase.database.models import User, as_utc
from skincase.errors import AccountSuspended, InsufficientPermissions, Unauthenticated
from skincase.services.user_service import load_active_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthenticatedPrincipal:
    id: str
    username: str
    is_banned: bool = False
    ban_reason: str | None = None
    ban_expires: datetime | None = None
    is_admin: bool = False
    permissions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_user(cls, user: User) -> AuthenticatedPrincipal:
        return cls(
            id=user.id,
            username=user.username,
            is_banned=bool(user.is_banned),
            ban_reason=user.ban_reason,
            ban_expires=as_utc(user.ban_expires),
            is_admin=bool(user.is_admin),
            permissions=frozenset(user.permissions or ()),
        )


def evaluate_access(
    principal: AuthenticatedPrincipal | None,
    required: Iterable[str] = (),
) -> AuthenticatedPrincipal:
    """Apply the gate rules; return the principal or raise."""
    if principal is None:
        raise Unauthenticated()
    if principal.is_banned:
        raise AccountSuspended(
            banReason=principal.ban_reason,
            banExpires=principal.ban_expires.isoformat() if principal.ban_expires else None,
        )
    required = frozenset(required)
    if required and not principal.is_admin and not (principal.permissions & required):
        raise InsufficientPermissions(required=sorted(required))
    return principal


# ---------------------------------------------------------------------------
# Principal resolution
# ---------------------------------------------------------------------------
def get_optional_principal(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> AuthenticatedPrincipal | None:
    """Decode the bearer token, if any.  A malformed or stale token is a 401."""
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise Unauthenticated("Malformed authorization header.")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise Unauthenticated("Invalid or expired token.")

    user = load_active_user(engine, str(payload.get("sub", "")))
    if user is None:
        raise Unauthenticated("Account no longer exists.")
    principal = AuthenticatedPrincipal.from_user(user)
    request.state.user_id = principal.id
    return principal


def get_current_principal(
    principal: AuthenticatedPrincipal | None = Depends(get_optional_principal),
) -> AuthenticatedPrincipal:
    """Signed-in, not banned.  No permission requirement."""
    return evaluate_access(principal)


def check_permissions(*required: str):
    """Dependency factory: signed-in, not banned, holding any of *required*.

    Usage::

        @router.post("/users/{user_id}/ban")
        def ban(admin = Depends(check_permissions(PERM_BAN_USERS))): ...
    """
    unknown = set(required) - ALL_PERMISSIONS
    if unknown:
        raise ValueError(f"Unknown permission(s): {sorted(unknown)}")

    def dependency(
        principal: AuthenticatedPrincipal | None = Depends(get_optional_principal),
    ) -> AuthenticatedPrincipal:
        try:
            return evaluate_access(principal, required)
        except InsufficientPermissions:
            logger.warning(
                "User %s denied: needs one of %s", principal.id, ", ".join(required)
            )
            raise

    return dependency
