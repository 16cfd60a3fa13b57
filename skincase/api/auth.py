"""
skincase.api.auth — Email/password accounts + JWT issuance
===========================================================

Register and login sit behind the ``auth`` rate limiter, which only
counts failed attempts.  Both are exempt from CSRF: the caller has no
session token before signing in.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import Engine

from skincase.api.csrf import generate_csrf_token
from skincase.api.deps import client_ip, create_access_token, get_config, get_engine
from skincase.api.permissions import AuthenticatedPrincipal, get_current_principal
from skincase.api.rate_limit import rate_limiter
from skincase.api.validation import LoginRules, RegisterRules, validate
from skincase.config import SkincaseConfig
from skincase.database.engine import get_session, run_db
from skincase.errors import Unauthenticated
from skincase.services import user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201, dependencies=[Depends(rate_limiter("auth"))])
async def register(
    data: RegisterRules = Depends(validate(RegisterRules)),
    cfg: SkincaseConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
):
    """Create an account and sign it in."""
    user = await run_db(
        user_service.create_user,
        engine,
        username=data.username,
        email=data.email,
        password=data.password,
        permissions=cfg.default_permissions,
    )
    return {
        "token": create_access_token(user, cfg.jwt_ttl_hours),
        "user": user_service.user_to_dict(user, private=True),
    }


@router.post("/login", dependencies=[Depends(rate_limiter("auth"))])
async def login(
    request: Request,
    data: LoginRules = Depends(validate(LoginRules)),
    cfg: SkincaseConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
):
    """Exchange email + password for a bearer token."""
    user = await run_db(user_service.authenticate, engine, data.email, data.password)
    if user is None:
        logger.info("Failed login for %s from %s", data.email, client_ip(request, cfg.trust_proxy))
        raise Unauthenticated("Invalid email or password.")
    return {
        "token": create_access_token(user, cfg.jwt_ttl_hours),
        "user": user_service.user_to_dict(user, private=True),
    }


def _load_profile(engine: Engine, user_id: str) -> dict:
    with get_session(engine) as session:
        return user_service.user_to_dict(user_service.get_user(session, user_id), private=True)


@router.get("/me")
async def me(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """Return the signed-in account."""
    return await run_db(_load_profile, engine, principal.id)


@router.get("/csrf-token")
def csrf_token(request: Request):
    """Issue (or repeat) the session's CSRF token."""
    return {"csrfToken": generate_csrf_token(request)}
