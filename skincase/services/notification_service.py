"""
skincase.services.notification_service — In-app Notifications
===============================================================

Notifications expire 30 days after creation; expired rows are hidden
from listings and are never re-activated.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.orm import Session

from skincase.constants import NOTIFICATION_TTL_DAYS
from skincase.database.models import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)


def create_notification(
    session: Session,
    user_id: str,
    *,
    type_: NotificationType,
    title: str,
    message: str,
    data: dict | None = None,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    now: datetime | None = None,
) -> Notification:
    """Add a notification to *session*.  The caller commits."""
    now = now or datetime.now(UTC)
    note = Notification(
        user_id=user_id,
        type=type_.value,
        title=title[:100],
        message=message[:500],
        data=data or {},
        priority=priority.value,
        expires_at=now + timedelta(days=NOTIFICATION_TTL_DAYS),
    )
    session.add(note)
    return note


def list_notifications(
    engine: Engine,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    now: datetime | None = None,
) -> tuple[int, list[Notification]]:
    """Return ``(total, page_rows)`` of unexpired notifications, newest first."""
    now = now or datetime.now(UTC)
    filters = [Notification.user_id == user_id, Notification.expires_at > now]
    if unread_only:
        filters.append(Notification.is_read.is_(False))

    with Session(engine, expire_on_commit=False) as session:
        total = session.scalar(select(func.count()).select_from(Notification).where(*filters))
        rows = session.scalars(
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    return total or 0, list(rows)


def mark_read(engine: Engine, user_id: str, notification_id: int) -> bool:
    """Flag one notification as read.  False if it is not the user's."""
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True)
        )
        session.commit()
    return result.rowcount > 0


def unread_count(engine: Engine, user_id: str, *, now: datetime | None = None) -> int:
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        count = session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.expires_at > now,
                Notification.is_read.is_(False),
            )
        )
    return count or 0


def mark_all_read(engine: Engine, user_id: str) -> int:
    """Flag every unread notification as read.  Returns how many changed."""
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        session.commit()
    return result.rowcount


def delete_notification(engine: Engine, user_id: str, notification_id: int) -> bool:
    """Delete one notification.  False if it is not the user's."""
    with Session(engine) as session:
        result = session.execute(
            delete(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
        )
        session.commit()
    return result.rowcount > 0


def clear_all(engine: Engine, user_id: str) -> int:
    with Session(engine) as session:
        result = session.execute(delete(Notification).where(Notification.user_id == user_id))
        session.commit()
    logger.info("Cleared %d notifications for %s", result.rowcount, user_id)
    return result.rowcount


def notification_to_dict(note: Notification) -> dict:
    return {
        "id": note.id,
        "type": note.type,
        "title": note.title,
        "message": note.message,
        "data": note.data or {},
        "priority": note.priority,
        "isRead": note.is_read,
        "createdAt": note.created_at.isoformat() if note.created_at else None,
    }
