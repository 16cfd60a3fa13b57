"""
skincase.api.sanitize — Request Input Sanitizer
================================================

Strips script-injection vectors from every string a client sends: JSON
and urlencoded form bodies, query-string values and path segments.  Runs
as a raw ASGI middleware so the cleaned values are what routing and
FastAPI's body parsing see.

Removed, case-insensitively, in this order:

- ``<script>…</script>`` blocks
- ``javascript:`` URLs
- inline ``on*=`` event handlers
- ``data:text/html`` URLs
- ``vbscript:`` URLs

and the remainder is trimmed.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qsl, urlencode

from starlette.types import ASGIApp, Message, Receive, Scope, Send

_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
)


def sanitize_text(text: str) -> str:
    for pattern in _PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def sanitize(value: Any) -> Any:
    """Clean every string in *value*.

    Dicts and lists are cleaned in place and returned; a bare string is
    returned cleaned; anything else comes back untouched.
    """
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, dict):
        for key, item in value.items():
            value[key] = sanitize(item)
    elif isinstance(value, list):
        for idx, item in enumerate(value):
            value[idx] = sanitize(item)
    return value


def _clean_pairs(encoded: bytes) -> bytes:
    """Clean the values of a urlencoded string; unchanged input comes back as-is.

    Decoding uses ``surrogateescape`` so bytes that are not valid UTF-8
    survive the round trip.
    """
    text = encoded.decode("utf-8", "surrogateescape")
    pairs = parse_qsl(text, keep_blank_values=True, errors="surrogateescape")
    cleaned = [(key, sanitize_text(val)) for key, val in pairs]
    if cleaned == pairs:
        return encoded
    return urlencode(cleaned, encoding="utf-8", errors="surrogateescape").encode("ascii")


def sanitize_query(query_string: bytes) -> bytes:
    return _clean_pairs(query_string)


def sanitize_path(path: str) -> str:
    return "/".join(sanitize_text(segment) for segment in path.split("/"))


def sanitize_body(body: bytes) -> bytes:
    """Re-encode a cleaned JSON body.

    Bodies that are not JSON, or nest too deeply to walk, pass through as-is.
    """
    try:
        return json.dumps(sanitize(json.loads(body))).encode("utf-8")
    except (UnicodeDecodeError, ValueError, RecursionError):
        return body


def sanitize_form(body: bytes) -> bytes:
    """Clean an ``application/x-www-form-urlencoded`` body."""
    return _clean_pairs(body)


def _body_cleaner(scope: Scope) -> Callable[[bytes], bytes] | None:
    for name, value in scope.get("headers", ()):
        if name == b"content-type":
            value = value.lower()
            if b"json" in value:
                return sanitize_body
            if value.startswith(b"application/x-www-form-urlencoded"):
                return sanitize_form
            return None
    return None


class SanitizeMiddleware:
    """ASGI middleware applying :func:`sanitize` before routing."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        scope["path"] = sanitize_path(scope["path"])
        if scope.get("query_string"):
            scope["query_string"] = sanitize_query(scope["query_string"])

        cleaner = _body_cleaner(scope)
        if cleaner is None:
            await self.app(scope, receive, send)
            return

        chunks: list[bytes] = []
        pending: Message | None = None
        while True:
            message = await receive()
            if message["type"] != "http.request":
                pending = message
                break
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break

        raw = b"".join(chunks)
        body = cleaner(raw) if raw else raw
        if body != raw:
            scope["headers"] = [
                (name, value) for name, value in scope["headers"] if name != b"content-length"
            ] + [(b"content-length", str(len(body)).encode("latin-1"))]

        replayed = False

        async def replay() -> Message:
            nonlocal replayed, pending
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            if pending is not None:
                message, pending = pending, None
                return message
            return await receive()

        await self.app(scope, replay, send)
