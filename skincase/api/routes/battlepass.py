"""
skincase.api.routes.battlepass — Battlepass endpoints
======================================================

Reads are open or need a signed-in user; purchases and claims also need a
CSRF token and sit behind the ``expensive`` rate limiter.
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
from skincase.api.validation import ClaimRules, MissionMetricsRules, validate
from skincase.constants import LEADERBOARD_MAX
from skincase.database.engine import run_db
from skincase.services import battlepass_service

router = APIRouter(prefix="/battlepass", tags=["battlepass"])


@router.get("/active")
async def active(engine: Engine = Depends(get_engine)):
    """The running season and its tier ladder."""
    return await run_db(battlepass_service.get_active_overview, engine)


@router.get("/progress")
async def progress(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    return await run_db(battlepass_service.get_progress, engine, principal.id)


@router.post(
    "/purchase",
    dependencies=[Depends(rate_limiter("expensive")), Depends(csrf_protection)],
)
async def purchase(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """Buy the premium track with Xcoins."""
    result = await run_db(battlepass_service.purchase_premium, engine, principal.id)
    return result.to_dict()


@router.post(
    "/claim-reward",
    dependencies=[Depends(rate_limiter("expensive")), Depends(csrf_protection)],
)
async def claim_reward(
    data: ClaimRules = Depends(validate(ClaimRules)),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    result = await run_db(
        battlepass_service.claim_reward, engine, principal.id, data.level, data.track
    )
    return result.to_dict()


@router.get("/leaderboard")
async def leaderboard(
    limit: int = Query(10, ge=1, le=LEADERBOARD_MAX),
    engine: Engine = Depends(get_engine),
):
    return await run_db(battlepass_service.get_leaderboard, engine, limit)


@router.get("/missions")
async def missions(
    principal: AuthenticatedPrincipal | None = Depends(get_optional_principal),
    engine: Engine = Depends(get_engine),
):
    """Active missions; signed-in callers also see their period progress."""
    user_id = principal.id if principal and not principal.is_banned else None
    return {"missions": await run_db(battlepass_service.get_active_missions, engine, user_id)}


@router.post(
    "/missions/{mission_id}/progress",
    dependencies=[Depends(rate_limiter("api"))],
)
async def report_mission_progress(
    mission_id: str,
    data: MissionMetricsRules = Depends(validate(MissionMetricsRules)),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """Report period totals for one mission's metrics."""
    results = await run_db(
        battlepass_service.record_mission_metrics,
        engine,
        principal.id,
        data.metrics,
        mission_id=mission_id,
    )
    return {"results": [r.to_dict() for r in results]}
