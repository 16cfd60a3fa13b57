"""
skincase.services.achievement_service — Achievement Unlocks & Views
====================================================================

Loads a user's standing into an :class:`AchievementContext`, asks the
pure engine in :mod:`skincase.engine.achievements` which achievements are
newly met and records each unlock.

An unlock inserts its ``user_achievements`` row under a SAVEPOINT before
any reward is paid; the primary key rejects the loser of a race.  XP
rewards go to the running battlepass and are skipped when none is active.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skincase.constants import LEADERBOARD_MAX
from skincase.database.models import (
    Achievement,
    ClaimedReward,
    NotificationPriority,
    NotificationType,
    TransactionType,
    User,
    UserAchievement,
    UserBattlepass,
    as_utc,
)
from skincase.engine.achievements import (
    RARITY_ORDER,
    AchievementContext,
    check_achievements,
    completion_percentage,
)
from skincase.errors import Conflict, NotFound
from skincase.services.battlepass_service import (
    add_xp,
    get_active_battlepass,
    get_or_create_progress,
    load_tiers,
)
from skincase.services.notification_service import create_notification
from skincase.services.user_service import apply_xcoins, get_user, total_spent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------
def get_unlocked_ids(session: Session, user_id: str) -> set[str]:
    return set(session.scalars(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    ))


def build_context(session: Session, user_id: str, unlocked: int) -> AchievementContext:
    """Snapshot the user's lifetime standing across every pass."""
    level, total_xp, missions = session.execute(
        select(
            func.coalesce(func.max(UserBattlepass.current_level), 0),
            func.coalesce(func.sum(UserBattlepass.total_xp), 0),
            func.coalesce(func.sum(UserBattlepass.missions_completed), 0),
        ).where(UserBattlepass.user_id == user_id)
    ).one()
    premium = session.scalar(
        select(UserBattlepass.id)
        .where(UserBattlepass.user_id == user_id, UserBattlepass.is_premium.is_(True))
        .limit(1)
    )
    claimed = session.scalar(
        select(func.count())
        .select_from(ClaimedReward)
        .join(UserBattlepass, UserBattlepass.id == ClaimedReward.user_battlepass_id)
        .where(UserBattlepass.user_id == user_id)
    )
    return AchievementContext(
        level=int(level),
        total_xp=int(total_xp),
        missions_completed=int(missions),
        xcoins_spent=total_spent(session, user_id),
        rewards_claimed=claimed or 0,
        is_premium=premium is not None,
        achievements_unlocked=unlocked,
    )


# ---------------------------------------------------------------------------
# Unlocks
# ---------------------------------------------------------------------------
def _unlock(session: Session, user_id: str, achievement: Achievement, now: datetime) -> bool:
    """Record one unlock and pay its rewards.  False if it was already unlocked."""
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(UserAchievement(
                user_id=user_id, achievement_id=achievement.id, unlocked_at=now,
            ))
            session.flush()
    except IntegrityError:
        return False

    if achievement.xcoins_reward:
        apply_xcoins(
            session, user_id, achievement.xcoins_reward,
            type_=TransactionType.REWARD,
            description=f"Achievement unlocked: {achievement.name}",
            metadata={"achievement_id": achievement.id},
        )
    if achievement.xp_reward:
        bp = get_active_battlepass(session, now)
        if bp is not None:
            progress = get_or_create_progress(session, user_id, bp.id)
            add_xp(session, progress, achievement.xp_reward, load_tiers(session, bp.id))
    session.execute(
        update(Achievement)
        .where(Achievement.id == achievement.id)
        .values(unlock_count=Achievement.unlock_count + 1)
        .execution_options(synchronize_session=False)
    )
    session.expire(achievement, ["unlock_count"])
    create_notification(
        session, user_id,
        type_=NotificationType.ACHIEVEMENT_UNLOCKED,
        title="Achievement unlocked!",
        message=f'Congratulations! You unlocked "{achievement.name}".',
        data={"achievementId": achievement.id, "achievementName": achievement.name},
        priority=NotificationPriority.HIGH,
        now=now,
    )
    logger.info("User %s unlocked achievement %s", user_id, achievement.id)
    return True


def check_user_achievements(
    engine: Engine, user_id: str, *, now: datetime | None = None
) -> list[dict]:
    """Unlock every active achievement the user now qualifies for.

    Rewards can satisfy further achievements (XP raises the level, each
    unlock counts towards meta achievements), so checks repeat until a
    pass unlocks nothing.  Returns the newly unlocked achievements.
    """
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        get_user(session, user_id)
        templates = {
            a.id: a for a in session.scalars(
                select(Achievement).where(Achievement.active.is_(True)).order_by(Achievement.id)
            )
        }
        unlocked = get_unlocked_ids(session, user_id)
        newly: list[Achievement] = []
        while True:
            ctx = build_context(session, user_id, len(unlocked))
            earned = check_achievements(templates.values(), ctx, unlocked)
            if not earned:
                break
            for achievement_id in earned:
                unlocked.add(achievement_id)
                if _unlock(session, user_id, templates[achievement_id], now):
                    newly.append(templates[achievement_id])
        session.commit()
        return [achievement_to_dict(a, unlocked_at=now) for a in newly]


def grant_achievement(
    engine: Engine,
    user_id: str,
    achievement_id: str,
    *,
    actor_id: str,
    now: datetime | None = None,
) -> dict:
    """Unlock *achievement_id* by hand, paying its rewards as usual.

    Works for any requirement type, manual ones included.  Raises
    :class:`Conflict` if the user already has it.
    """
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        get_user(session, user_id)
        achievement = session.get(Achievement, achievement_id)
        if achievement is None:
            raise NotFound("Achievement not found.")
        if not _unlock(session, user_id, achievement, now):
            raise Conflict("The user has already unlocked this achievement.")
        session.commit()
        logger.info("Admin %s granted achievement %s to %s", actor_id, achievement_id, user_id)
        return achievement_to_dict(achievement, unlocked_at=now)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def _sort_key(achievement: Achievement) -> tuple:
    rank = RARITY_ORDER.get(achievement.rarity, len(RARITY_ORDER))
    return (rank, achievement.category, achievement.id)


def achievement_to_dict(
    achievement: Achievement, *, unlocked_at: datetime | None = None
) -> dict:
    unlocked_at = as_utc(unlocked_at)
    return {
        "id": achievement.id,
        "name": achievement.name,
        "description": achievement.description,
        "icon": achievement.icon,
        "category": achievement.category,
        "rarity": achievement.rarity,
        "rewards": {
            "xp": achievement.xp_reward,
            "xcoins": achievement.xcoins_reward,
            "title": achievement.title,
            "badge": achievement.badge,
        },
        "unlockCount": achievement.unlock_count,
        "unlockedAt": unlocked_at.isoformat() if unlocked_at else None,
    }


def _unlock_times(session: Session, user_id: str) -> dict[str, datetime]:
    rows = session.execute(
        select(UserAchievement.achievement_id, UserAchievement.unlocked_at)
        .where(UserAchievement.user_id == user_id)
    ).all()
    return {r.achievement_id: r.unlocked_at for r in rows}


def list_achievements(
    engine: Engine,
    user_id: str | None = None,
    *,
    category: str | None = None,
    rarity: str | None = None,
) -> list[dict]:
    """Active achievements, commonest first.

    With *user_id* each entry carries ``unlocked``; hidden achievements are
    listed only to users who unlocked them.
    """
    filters = [Achievement.active.is_(True)]
    if category:
        filters.append(Achievement.category == category)
    if rarity:
        filters.append(Achievement.rarity == rarity)

    with Session(engine, expire_on_commit=False) as session:
        achievements = session.scalars(select(Achievement).where(*filters)).all()
        times = _unlock_times(session, user_id) if user_id else {}

    out = []
    for achievement in sorted(achievements, key=_sort_key):
        if achievement.is_hidden and achievement.id not in times:
            continue
        view = achievement_to_dict(achievement, unlocked_at=times.get(achievement.id))
        if user_id:
            view["unlocked"] = achievement.id in times
        out.append(view)
    return out


def get_user_achievements(engine: Engine, user_id: str) -> dict:
    """The user's unlocked achievements with completion stats."""
    with Session(engine, expire_on_commit=False) as session:
        get_user(session, user_id)
        rows = session.execute(
            select(Achievement, UserAchievement.unlocked_at)
            .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.unlocked_at, Achievement.id)
        ).all()
        total = session.scalar(
            select(func.count()).select_from(Achievement).where(Achievement.active.is_(True))
        ) or 0

    breakdown: dict[str, int] = {}
    for achievement, _ in rows:
        breakdown[achievement.category] = breakdown.get(achievement.category, 0) + 1
    return {
        "achievements": [achievement_to_dict(a, unlocked_at=at) for a, at in rows],
        "stats": {
            "unlocked": len(rows),
            "total": total,
            "completionPercentage": completion_percentage(len(rows), total),
            "categoryBreakdown": breakdown,
        },
    }


def _count_by(engine: Engine, column) -> list[tuple[str, int]]:
    with Session(engine) as session:
        rows = session.execute(
            select(column, func.count())
            .where(Achievement.active.is_(True))
            .group_by(column)
            .order_by(column)
        ).all()
    return [(value, count) for value, count in rows]


def category_counts(engine: Engine) -> list[dict]:
    return [
        {"category": value, "count": count}
        for value, count in _count_by(engine, Achievement.category)
    ]


def rarity_counts(engine: Engine) -> list[dict]:
    rows = sorted(
        _count_by(engine, Achievement.rarity),
        key=lambda row: RARITY_ORDER.get(row[0], len(RARITY_ORDER)),
    )
    return [{"rarity": value, "count": count} for value, count in rows]


def get_achievement_leaderboard(engine: Engine, limit: int = 10) -> list[dict]:
    """Users with the most unlocks, ties broken by who got there first."""
    limit = max(1, min(limit, LEADERBOARD_MAX))
    unlocks = func.count(UserAchievement.achievement_id)
    with Session(engine) as session:
        rows = session.execute(
            select(User.id, User.username, unlocks.label("unlocks"))
            .join(UserAchievement, UserAchievement.user_id == User.id)
            .group_by(User.id, User.username)
            .order_by(unlocks.desc(), func.max(UserAchievement.unlocked_at), User.id)
            .limit(limit)
        ).all()
    return [
        {"rank": rank, "userId": row.id, "username": row.username, "achievementCount": row.unlocks}
        for rank, row in enumerate(rows, start=1)
    ]
