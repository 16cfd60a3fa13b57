"""
skincase.api.routes.users — Profiles & notifications
=====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from skincase.api.deps import get_engine
from skincase.api.permissions import AuthenticatedPrincipal, get_current_principal
from skincase.api.validation import ObjectIdRules, PaginationRules, validate
from skincase.database.engine import get_session, run_db
from skincase.errors import NotFound
from skincase.services import notification_service, user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me/notifications")
async def my_notifications(
    paging: PaginationRules = Depends(validate(PaginationRules, "query")),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    total, rows = await run_db(
        notification_service.list_notifications,
        engine,
        principal.id,
        page=paging.page,
        limit=paging.limit,
    )
    return {
        "notifications": [notification_service.notification_to_dict(n) for n in rows],
        "pagination": {
            "page": paging.page,
            "limit": paging.limit,
            "total": total,
            "pages": (total + paging.limit - 1) // paging.limit,
        },
    }


@router.post("/me/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    if not await run_db(notification_service.mark_read, engine, principal.id, notification_id):
        raise NotFound("Notification not found.")
    return {"ok": True}


@router.get("/me/notifications/unread-count")
async def unread_count(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    return {"count": await run_db(notification_service.unread_count, engine, principal.id)}


@router.post("/me/notifications/read-all")
async def mark_all_read(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    modified = await run_db(notification_service.mark_all_read, engine, principal.id)
    return {"modifiedCount": modified}


@router.delete("/me/notifications/{notification_id}")
async def delete_notification(
    notification_id: int,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    if not await run_db(
        notification_service.delete_notification, engine, principal.id, notification_id
    ):
        raise NotFound("Notification not found.")
    return {"ok": True}


@router.delete("/me/notifications")
async def clear_notifications(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    deleted = await run_db(notification_service.clear_all, engine, principal.id)
    return {"deletedCount": deleted}


def _load_profile(engine: Engine, user_id: str, private: bool) -> dict:
    with get_session(engine) as session:
        return user_service.user_to_dict(user_service.get_user(session, user_id), private=private)


@router.get("/{user_id}")
async def profile(
    user_id: str,
    params: ObjectIdRules = Depends(validate(ObjectIdRules, "path")),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    engine: Engine = Depends(get_engine),
):
    """Public profile of any user; the owner sees the private fields too."""
    return await run_db(_load_profile, engine, params.user_id, params.user_id == principal.id)
