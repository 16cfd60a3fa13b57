"""
skincase.errors — Error Taxonomy
=================================

Every error surfaced to a client carries a stable machine-readable ``code``
and a human-readable ``message``.  HTTP-facing errors also carry a status
code; the API layer renders any :class:`SkincaseError` as::

    {"error": code, "message": message, **extra}

Battlepass domain errors are raised by the services and engine and are
equally renderable, so routes never translate them by hand.
"""

from __future__ import annotations

from typing import Any


class SkincaseError(Exception):
    """Base class for all errors with a client-visible payload."""

    code = "error"
    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update({k: v for k, v in self.extra.items() if v is not None})
        return payload


# ---------------------------------------------------------------------------
# Request-pipeline errors
# ---------------------------------------------------------------------------
class RateLimited(SkincaseError):
    """Retryable once the window resets (``retryAfter`` seconds)."""

    code = "rate_limited"
    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: int,
        reset_in: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, retryAfter=retry_after)
        if code:
            self.code = code
        self.reset_in = reset_in if reset_in is not None else retry_after


class ValidationFailed(SkincaseError):
    code = "validation_failed"
    status_code = 400
    default_message = "The submitted data is not valid."

    def __init__(self, details: list[dict[str, Any]], message: str | None = None) -> None:
        super().__init__(message, details=details)
        self.details = details


class Unauthenticated(SkincaseError):
    code = "unauthenticated"
    status_code = 401
    default_message = "You must be signed in to access this resource."


class Forbidden(SkincaseError):
    code = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action."


class AccountSuspended(Forbidden):
    code = "account_suspended"
    default_message = "Your account has been suspended. Contact support for details."


class InsufficientPermissions(Forbidden):
    code = "insufficient_permissions"
    default_message = "You do not have the permissions required for this action."


class CsrfInvalid(Forbidden):
    code = "csrf_invalid"
    default_message = "Your session has expired. Please reload the page."


class NotFound(SkincaseError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


class Conflict(SkincaseError):
    code = "conflict"
    status_code = 409
    default_message = "The resource already exists."


# ---------------------------------------------------------------------------
# Battlepass domain errors
# ---------------------------------------------------------------------------
class BattlepassError(SkincaseError):
    code = "battlepass_error"


class NoActiveBattlepass(BattlepassError):
    code = "no_active_battlepass"
    status_code = 404
    default_message = "There is no active battlepass."


class TierNotFound(BattlepassError):
    code = "tier_not_found"
    status_code = 404
    default_message = "This battlepass has no such tier."


class MissionNotFound(BattlepassError):
    code = "mission_not_found"
    status_code = 404
    default_message = "Mission not found or not active."


class NotUnlocked(BattlepassError):
    code = "not_unlocked"
    status_code = 403
    default_message = "This tier has not been unlocked yet."


class PremiumRequired(BattlepassError):
    code = "premium_required"
    status_code = 403
    default_message = "Premium battlepass required to claim this reward."


class AlreadyClaimed(BattlepassError):
    code = "already_claimed"
    status_code = 409
    default_message = "This reward has already been claimed."


class InsufficientFunds(BattlepassError):
    code = "insufficient_funds"
    status_code = 400
    default_message = "Not enough Xcoins."
