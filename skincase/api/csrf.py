"""
skincase.api.csrf — Session-bound CSRF Tokens
==============================================

The token lives in the signed session cookie (Starlette
``SessionMiddleware``).  State-changing requests must echo it back in the
``X-CSRF-Token`` header or a ``_csrf`` field of the JSON body.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import Request

from skincase.errors import CsrfInvalid

logger = logging.getLogger(__name__)

SESSION_KEY = "csrf_token"
HEADER_NAME = "X-CSRF-Token"
BODY_FIELD = "_csrf"

_PROTECTED_METHODS = frozenset({"POST", "PUT", "DELETE"})


def generate_csrf_token(request: Request) -> str:
    """Return the session's token, minting one on first use."""
    token = request.session.get(SESSION_KEY)
    if not token:
        token = secrets.token_hex(32)
        request.session[SESSION_KEY] = token
    return token


async def _submitted_token(request: Request) -> str | None:
    token = request.headers.get(HEADER_NAME)
    if token:
        return token
    try:
        body = await request.json()
    except (ValueError, RecursionError):
        return None
    if isinstance(body, dict) and isinstance(body.get(BODY_FIELD), str):
        return body[BODY_FIELD]
    return None


def _tokens_match(submitted: str, expected: str) -> bool:
    """Constant-time compare over UTF-8 bytes; any submitted text is comparable."""
    return secrets.compare_digest(
        submitted.encode("utf-8", "surrogatepass"), expected.encode("utf-8")
    )


async def csrf_protection(request: Request) -> None:
    """Reject POST/PUT/DELETE whose token is absent or does not match."""
    if request.method not in _PROTECTED_METHODS:
        return
    expected = request.session.get(SESSION_KEY)
    submitted = await _submitted_token(request)
    if not expected or not submitted or not _tokens_match(submitted, expected):
        logger.warning("CSRF check failed on %s %s", request.method, request.url.path)
        raise CsrfInvalid()
