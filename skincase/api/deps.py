"""
skincase.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from functools import lru_cache

import jwt
from fastapi import Request
from sqlalchemy import Engine

from skincase.config import SkincaseConfig, load_config
from skincase.database.engine import create_db_engine
from skincase.database.models import User

_WEAK_SECRETS = frozenset({
    "skincase-dev-secret-change-me",
    "your-secret-key",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_secret(name: str) -> str:
    """Load and validate a signing secret from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv(name, "")
    if not secret:
        raise RuntimeError(
            f"{name} environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"{name} is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"{name} is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_secret("JWT_SECRET")
SESSION_SECRET: str = _load_secret("SESSION_SECRET")


def is_production() -> bool:
    return os.getenv("SKINCASE_ENV", "development").strip().lower() == "production"


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> SkincaseConfig:
    return load_config()


def client_ip(request: Request, trust_proxy: bool = False) -> str:
    """Resolve the caller's address, honouring X-Forwarded-For behind a proxy."""
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def create_access_token(user: User, ttl_hours: int) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user.id,
        "username": user.username,
        "is_admin": bool(user.is_admin),
        "iat": now,
        "exp": now + timedelta(hours=ttl_hours),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)
