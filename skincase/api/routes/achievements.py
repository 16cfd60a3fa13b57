"""
skincase.api.routes.achievements — Achievement endpoints
=========================================================

Listings are open; signed-in callers also see which achievements they
have unlocked.  Running the unlock check needs a CSRF token and sits
behind the ``expensive`` rate limiter.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from skincase.api.csrf import csrf_protection
from skincase.api.deps import get_engine
from skincase.api.permissions import (
    AuthenticatedPrincipal,
    get_current_principal,
    get_optional_principal,
)
from skincase.api.rate_limit import rate_limiter
from skincase.api.validation import AchievementFilterRules, ObjectIdRules, validate
from skincase.constants import LEADERBOARD_MAX
from skincase.database.engine import run_db
from skincase.errors import Forbidden
from skincase.services import achievement_service

router = APIRouter(prefix="/achievements", tags=["achievements"])


@router.get("")
async def list_achievements(
    filters: AchievementFilterRules = Depends(validate(AchievementFilterRules, "query")),
    principal: AuthenticatedPrincipal | None = Depends(get_optional_principal),
    engine: Engine = Depends(get_engine),
):
    user_id = principal.id if principal and not principal.is_banned else None
    achievements = await run_db(
        achievement_service.list_achievements,
        engine,
        user_id,
        category=filters.category,
        rarity=filters.rarity,
    )
    return {"achievements": achievements}


@router.get("/categories")
async def categories(engine: Engine = Depends(get_engine)):
    return {"categories": await run_db(achievement_service.category_counts, engine)}


@router.get("/rarities")
async def rarities(engine: Engine = Depends(get_engine)):
    return {"rarities": await run_db(achievement_service.rarity_counts, engine)}


@router.get("/leaderboard")
async def leaderboard(
    limit: int = Query(10, ge=1, le=LEADERBOARD_MAX),
    engine: Engine = Depends(get_engine),
):
    """Users ranked by unlocked achievements."""
    entries = await run_db(achievement_service.get_achievement_leaderboard, engine, limit)
    return {"entries": entries}


@router.get("/users/{user_id}")
async def user_achievements(
    user_id: str,
    params: ObjectIdRules = Depends(validate(ObjectIdRules, "path")),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """A user's unlocks and completion stats.  Owner or admin only."""
    if params.user_id != principal.id and not principal.is_admin:
        raise Forbidden("You can only view your own achievements.")
    return await run_db(achievement_service.get_user_achievements, engine, params.user_id)


@router.post(
    "/check",
    dependencies=[Depends(rate_limiter("expensive")), Depends(csrf_protection)],
)
async def check(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """Unlock every achievement the caller now qualifies for."""
    unlocked = await run_db(achievement_service.check_user_achievements, engine, principal.id)
    return {"achievements": unlocked}
