"""
skincase.api.routes.xcoins — Xcoins ledger reads
=================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from skincase.api.deps import get_engine
from skincase.api.permissions import AuthenticatedPrincipal, get_current_principal
from skincase.api.validation import PaginationRules, validate
from skincase.database.engine import run_db
from skincase.services import user_service

router = APIRouter(prefix="/xcoins", tags=["xcoins"])


@router.get("/balance")
async def balance(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    return await run_db(user_service.get_balance, engine, principal.id)


@router.get("/transactions")
async def transactions(
    paging: PaginationRules = Depends(validate(PaginationRules, "query")),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """The caller's ledger, newest first."""
    total, rows = await run_db(
        user_service.list_transactions,
        engine,
        principal.id,
        page=paging.page,
        limit=paging.limit,
    )
    return {
        "transactions": [user_service.transaction_to_dict(tx) for tx in rows],
        "pagination": {
            "page": paging.page,
            "limit": paging.limit,
            "total": total,
            "pages": (total + paging.limit - 1) // paging.limit,
        },
    }


@router.get("/stats")
async def stats(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    return await run_db(user_service.transaction_stats, engine, principal.id)
