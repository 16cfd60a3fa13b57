"""
skincase.api.routes.admin — Admin endpoints (permission-gated)
===============================================================

Each route needs one permission; admins pass every check.  All of them
mutate state, so all require the session's CSRF token.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from skincase.api.csrf import csrf_protection
from skincase.api.deps import get_engine
from skincase.api.permissions import AuthenticatedPrincipal, check_permissions
from skincase.api.validation import (
    BanRules,
    ObjectIdRules,
    XcoinsRules,
    XpGrantRules,
    validate,
)
from skincase.constants import (
    PERM_BAN_USERS,
    PERM_MANAGE_BATTLEPASS,
    PERM_MANAGE_USERS,
    PERM_MANAGE_XCOINS,
)
from skincase.database.engine import run_db
from skincase.errors import Forbidden
from skincase.services import achievement_service, battlepass_service, user_service

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(csrf_protection)],
)

_user_path = Depends(validate(ObjectIdRules, "path"))


@router.post("/users/{user_id}/xp", dependencies=[_user_path])
async def grant_xp(
    user_id: str,
    data: XpGrantRules = Depends(validate(XpGrantRules)),
    admin: AuthenticatedPrincipal = Depends(check_permissions(PERM_MANAGE_BATTLEPASS)),
    engine: Engine = Depends(get_engine),
):
    result = await run_db(
        battlepass_service.grant_xp,
        engine,
        user_id,
        data.amount,
        reason=data.reason or f"admin:{admin.id}",
    )
    return result.to_dict()


@router.post("/users/{user_id}/xcoins", dependencies=[_user_path])
async def credit_xcoins(
    user_id: str,
    data: XcoinsRules = Depends(validate(XcoinsRules)),
    admin: AuthenticatedPrincipal = Depends(check_permissions(PERM_MANAGE_XCOINS)),
    engine: Engine = Depends(get_engine),
):
    balance = await run_db(
        user_service.credit_xcoins,
        engine,
        user_id,
        data.amount,
        actor_id=admin.id,
        reason=data.reason,
    )
    return {"userId": user_id, "balance": balance}


@router.post("/users/{user_id}/ban", dependencies=[_user_path])
async def ban(
    user_id: str,
    data: BanRules = Depends(validate(BanRules)),
    admin: AuthenticatedPrincipal = Depends(check_permissions(PERM_BAN_USERS)),
    engine: Engine = Depends(get_engine),
):
    """Ban a user, permanently unless ``durationHours`` is given."""
    if user_id == admin.id:
        raise Forbidden("You cannot ban yourself.")
    expires = None
    if data.duration_hours:
        expires = datetime.now(UTC) + timedelta(hours=data.duration_hours)
    user = await run_db(
        user_service.ban_user,
        engine,
        user_id,
        reason=data.reason,
        expires_at=expires,
        actor_id=admin.id,
    )
    return user_service.user_to_dict(user, private=True)


@router.post("/users/{user_id}/unban", dependencies=[_user_path])
async def unban(
    user_id: str,
    admin: AuthenticatedPrincipal = Depends(check_permissions(PERM_BAN_USERS)),
    engine: Engine = Depends(get_engine),
):
    user = await run_db(user_service.unban_user, engine, user_id, actor_id=admin.id)
    return user_service.user_to_dict(user, private=True)


@router.post("/users/{user_id}/missions/{mission_id}/complete", dependencies=[_user_path])
async def complete_mission(
    user_id: str,
    mission_id: str,
    admin: AuthenticatedPrincipal = Depends(
        check_permissions(PERM_MANAGE_BATTLEPASS, PERM_MANAGE_USERS)
    ),
    engine: Engine = Depends(get_engine),
):
    result = await run_db(battlepass_service.complete_mission, engine, user_id, mission_id)
    return result.to_dict()


@router.post("/users/{user_id}/achievements/{achievement_id}", dependencies=[_user_path])
async def grant_achievement(
    user_id: str,
    achievement_id: str,
    admin: AuthenticatedPrincipal = Depends(check_permissions(PERM_MANAGE_USERS)),
    engine: Engine = Depends(get_engine),
):
    """Unlock an achievement by hand, e.g. a manual one."""
    return await run_db(
        achievement_service.grant_achievement,
        engine,
        user_id,
        achievement_id,
        actor_id=admin.id,
    )


@router.post("/battlepass/{battlepass_id}/archive")
async def archive(
    battlepass_id: int,
    admin: AuthenticatedPrincipal = Depends(check_permissions(PERM_MANAGE_BATTLEPASS)),
    engine: Engine = Depends(get_engine),
):
    """End a season: deactivate the pass and archive its progress rows."""
    archived = await run_db(
        battlepass_service.archive_season, engine, battlepass_id, actor_id=admin.id
    )
    return {"battlepassId": battlepass_id, "archived": archived}
