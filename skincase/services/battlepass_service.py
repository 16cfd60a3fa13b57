"""
skincase.services.battlepass_service — Battlepass Persistence & Progression
============================================================================

Shared service module behind the battlepass and admin routes.  Pure rules
live in :mod:`skincase.engine.progression` and :mod:`skincase.engine.missions`;
this module loads state, applies those rules and writes the result.

Concurrency:
- XP and Xcoins changes are single-statement ``UPDATE col = col + n``.
- The level is only ever raised (``WHERE current_level < :new``).
- A claim inserts its ``claimed_rewards`` row under a SAVEPOINT before any
  reward is granted; the primary key rejects the loser of a race.
- Premium purchase flips the flag conditionally, then debits conditionally,
  inside one transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skincase.constants import LEADERBOARD_MAX
from skincase.database.models import (
    Battlepass,
    BattlepassTier,
    ClaimedReward,
    Mission,
    MissionCompletion,
    MissionProgress,
    NotificationPriority,
    NotificationType,
    RewardType,
    TransactionType,
    Track,
    User,
    UserBattlepass,
    as_utc,
)
from skincase.engine.missions import (
    LEVEL_METRIC,
    is_mission_active,
    mission_progress,
    period_key,
)
from skincase.engine.progression import (
    TierSpec,
    check_claim,
    describe_reward,
    level_for_xp,
    time_remaining,
    unclaimed_rewards,
)
from skincase.errors import (
    AlreadyClaimed,
    MissionNotFound,
    NoActiveBattlepass,
    NotFound,
    TierNotFound,
)
from skincase.services.notification_service import create_notification
from skincase.services.user_service import apply_xcoins, get_user

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass
class MissionResult:
    mission_id: str
    progress: int
    completed_now: bool = False
    xp_awarded: int = 0
    xcoins_awarded: int = 0

    def to_dict(self) -> dict:
        return {
            "missionId": self.mission_id,
            "progress": self.progress,
            "completed": self.completed_now,
            "xpAwarded": self.xp_awarded,
            "xcoinsAwarded": self.xcoins_awarded,
        }


@dataclass
class XpGrantResult:
    xp_added: int
    current_xp: int
    old_level: int
    new_level: int
    missions: list[MissionResult] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level

    def to_dict(self) -> dict:
        return {
            "xpAdded": self.xp_added,
            "currentXp": self.current_xp,
            "oldLevel": self.old_level,
            "newLevel": self.new_level,
            "leveledUp": self.leveled_up,
            "missionsCompleted": [m.to_dict() for m in self.missions],
        }


@dataclass
class ClaimResult:
    level: int
    track: str
    rewards: list[dict]
    labels: list[str]
    xcoins_granted: int
    balance: int

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "track": self.track,
            "rewards": self.rewards,
            "labels": self.labels,
            "xcoinsGranted": self.xcoins_granted,
            "balance": self.balance,
        }


@dataclass
class PurchaseResult:
    purchased: bool
    message: str
    price: int
    balance: int

    def to_dict(self) -> dict:
        return {
            "purchased": self.purchased,
            "message": self.message,
            "price": self.price,
            "balance": self.balance,
        }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_active_battlepass(session: Session, now: datetime | None = None) -> Battlepass | None:
    """The running season: ``active`` and ``starts_at <= now <= ends_at``."""
    now = now or datetime.now(UTC)
    return session.scalar(
        select(Battlepass)
        .where(
            Battlepass.active.is_(True),
            Battlepass.starts_at <= now,
            Battlepass.ends_at >= now,
        )
        .order_by(Battlepass.starts_at.desc())
        .limit(1)
    )


def _require_battlepass(
    session: Session, battlepass_id: int | None, now: datetime
) -> Battlepass:
    if battlepass_id is None:
        bp = get_active_battlepass(session, now)
    else:
        bp = session.get(Battlepass, battlepass_id)
        if bp is not None and not (
            bp.active and as_utc(bp.starts_at) <= now <= as_utc(bp.ends_at)
        ):
            bp = None
    if bp is None:
        raise NoActiveBattlepass()
    return bp


def load_tiers(session: Session, battlepass_id: int) -> list[TierSpec]:
    rows = session.scalars(
        select(BattlepassTier)
        .where(BattlepassTier.battlepass_id == battlepass_id)
        .order_by(BattlepassTier.level)
    ).all()
    return [TierSpec.from_row(r) for r in rows]


def _active_missions(session: Session, battlepass_id: int, now: datetime) -> list[Mission]:
    missions = session.scalars(
        select(Mission).where(Mission.battlepass_id == battlepass_id).order_by(Mission.id)
    ).all()
    return [
        m for m in missions
        if is_mission_active(m.active, as_utc(m.starts_at), as_utc(m.ends_at), now)
    ]


def _claimed_set(session: Session, progress_id: int) -> set[tuple[int, str]]:
    rows = session.execute(
        select(ClaimedReward.level, ClaimedReward.track)
        .where(ClaimedReward.user_battlepass_id == progress_id)
    ).all()
    return {(r.level, r.track) for r in rows}


def get_or_create_progress(session: Session, user_id: str, battlepass_id: int) -> UserBattlepass:
    """Fetch the user's progress row on a pass, creating it on first use."""
    stmt = select(UserBattlepass).where(
        UserBattlepass.user_id == user_id,
        UserBattlepass.battlepass_id == battlepass_id,
    )
    progress = session.scalar(stmt)
    if progress is not None:
        return progress

    get_user(session, user_id)
    progress = UserBattlepass(user_id=user_id, battlepass_id=battlepass_id)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(progress)
            session.flush()
    except IntegrityError:
        # A concurrent request created it first
        progress = session.scalar(stmt)
    return progress


def _resync_level(session: Session, progress: UserBattlepass, tiers: list[TierSpec]) -> int:
    """Raise ``current_level`` to match ``current_xp`` if the ladder moved."""
    level = level_for_xp(tiers, progress.current_xp)
    if level > progress.current_level:
        session.execute(
            update(UserBattlepass)
            .where(UserBattlepass.id == progress.id, UserBattlepass.current_level < level)
            .values(current_level=level)
            .execution_options(synchronize_session=False)
        )
        session.expire(progress)
    return max(level, progress.current_level)


def add_xp(
    session: Session, progress: UserBattlepass, amount: int, tiers: list[TierSpec]
) -> tuple[int, int, int]:
    """Atomically add XP and raise the level.  Returns (old, new, current_xp)."""
    old_level = progress.current_level
    session.execute(
        update(UserBattlepass)
        .where(UserBattlepass.id == progress.id)
        .values(
            current_xp=UserBattlepass.current_xp + amount,
            total_xp=UserBattlepass.total_xp + amount,
        )
        .execution_options(synchronize_session=False)
    )
    current_xp = session.scalar(
        select(UserBattlepass.current_xp).where(UserBattlepass.id == progress.id)
    )
    new_level = level_for_xp(tiers, current_xp)
    session.execute(
        update(UserBattlepass)
        .where(UserBattlepass.id == progress.id, UserBattlepass.current_level < new_level)
        .values(current_level=new_level)
        .execution_options(synchronize_session=False)
    )
    session.expire(progress)
    return old_level, max(old_level, new_level), current_xp


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------
def _store_progress(
    session: Session, progress_id: int, mission_id: str, period: str, pct: int
) -> int:
    """Keep the highest percent seen this period.  Returns the stored value."""
    row = session.get(MissionProgress, (progress_id, mission_id, period))
    if row is None:
        row = MissionProgress(
            user_battlepass_id=progress_id, mission_id=mission_id,
            period_key=period, progress=pct,
        )
        try:
            with session.begin_nested():
                session.add(row)
                session.flush()
            return pct
        except IntegrityError:
            row = session.get(MissionProgress, (progress_id, mission_id, period))
    if pct > row.progress:
        row.progress = pct
    return row.progress


def _complete(
    session: Session,
    progress: UserBattlepass,
    mission: Mission,
    period: str,
    tiers: list[TierSpec],
    now: datetime,
) -> MissionResult | None:
    """Record a completion and pay out.  None if already done this period."""
    key = (progress.id, mission.id, period)
    if session.get(MissionCompletion, key) is not None:
        return None
    try:
        with session.begin_nested():
            session.add(MissionCompletion(
                user_battlepass_id=progress.id, mission_id=mission.id,
                period_key=period, completed_at=now,
            ))
            session.flush()
    except IntegrityError:
        return None

    user_id = progress.user_id
    _store_progress(session, progress.id, mission.id, period, 100)
    if mission.xp_reward:
        add_xp(session, progress, mission.xp_reward, tiers)
    if mission.xcoins_reward:
        apply_xcoins(
            session, user_id, mission.xcoins_reward,
            type_=TransactionType.REWARD,
            description=f"Mission completed: {mission.name}",
            metadata={"mission_id": mission.id, "period": period},
        )
    session.execute(
        update(UserBattlepass)
        .where(UserBattlepass.id == progress.id)
        .values(missions_completed=UserBattlepass.missions_completed + 1)
        .execution_options(synchronize_session=False)
    )
    session.expire(progress)
    create_notification(
        session, user_id,
        type_=NotificationType.MISSION_COMPLETED,
        title="Mission completed",
        message=f"{mission.name}: +{mission.xp_reward} XP, +{mission.xcoins_reward} Xcoins",
        data={"missionId": mission.id, "period": period},
        priority=NotificationPriority.LOW,
        now=now,
    )
    logger.info("User %s completed mission %s (%s)", user_id, mission.id, period)
    return MissionResult(
        mission_id=mission.id,
        progress=100,
        completed_now=True,
        xp_awarded=mission.xp_reward,
        xcoins_awarded=mission.xcoins_reward,
    )


def _evaluate_missions(
    session: Session,
    progress: UserBattlepass,
    missions: list[Mission],
    metrics: Mapping[str, int],
    tiers: list[TierSpec],
    now: datetime,
) -> list[MissionResult]:
    """Score every mission whose metrics are all known, completing any at 100%.

    Completions can raise the level, which may finish a level mission, so
    passes repeat until one completes nothing.
    """
    results: dict[str, MissionResult] = {}
    while True:
        merged = {**metrics, LEVEL_METRIC: progress.current_level}
        completed_any = False
        for mission in missions:
            requirements = mission.requirements or {}
            if not requirements or not set(requirements) <= set(merged):
                continue
            period = period_key(mission.type, now)
            pct = mission_progress(requirements, merged)
            stored = _store_progress(session, progress.id, mission.id, period, pct)
            outcome = None
            if stored >= 100:
                outcome = _complete(session, progress, mission, period, tiers, now)
            if outcome is not None:
                completed_any = True
                results[mission.id] = outcome
            elif mission.id not in results:
                results[mission.id] = MissionResult(mission_id=mission.id, progress=stored)
        if not completed_any:
            return list(results.values())


def record_mission_metrics(
    engine: Engine,
    user_id: str,
    metrics: Mapping[str, int],
    *,
    mission_id: str | None = None,
    now: datetime | None = None,
) -> list[MissionResult]:
    """Apply reported period totals (``{"casesOpened": 3}``) to active missions.

    Without *mission_id*, only missions whose every requirement metric is
    reported (or is the battlepass level) are scored.  With it, only that
    mission is scored and unreported metrics count as 0.  Progress never
    moves backwards within a period; reaching 100% completes the mission
    once for that period.
    """
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        progress = get_or_create_progress(session, user_id, bp.id)
        tiers = load_tiers(session, bp.id)
        _resync_level(session, progress, tiers)
        missions = _active_missions(session, bp.id, now)
        if mission_id is None:
            results = _evaluate_missions(session, progress, missions, metrics, tiers, now)
        else:
            target = next((m for m in missions if m.id == mission_id), None)
            if target is None:
                raise MissionNotFound()
            filled = {name: 0 for name in target.requirements or {}} | dict(metrics)
            results = _evaluate_missions(session, progress, [target], filled, tiers, now)
            if results and results[0].completed_now:
                # Mission XP may have finished a level mission
                results += [
                    r for r in _evaluate_missions(session, progress, missions, {}, tiers, now)
                    if r.completed_now
                ]
        session.commit()
    return results


def complete_mission(
    engine: Engine,
    user_id: str,
    mission_id: str,
    *,
    now: datetime | None = None,
) -> MissionResult:
    """Complete *mission_id* outright.  ``completed_now`` is False if it was
    already completed this period.
    """
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        mission = next(
            (m for m in _active_missions(session, bp.id, now) if m.id == mission_id), None
        )
        if mission is None:
            raise MissionNotFound()
        progress = get_or_create_progress(session, user_id, bp.id)
        tiers = load_tiers(session, bp.id)
        period = period_key(mission.type, now)
        outcome = _complete(session, progress, mission, period, tiers, now)
        session.commit()
    return outcome or MissionResult(mission_id=mission_id, progress=100)


def get_active_missions(
    engine: Engine, user_id: str | None = None, *, now: datetime | None = None
) -> list[dict]:
    """Active missions of the running pass, with the user's period progress."""
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        missions = _active_missions(session, bp.id, now)
        progress = None
        if user_id is not None:
            progress = session.scalar(
                select(UserBattlepass).where(
                    UserBattlepass.user_id == user_id,
                    UserBattlepass.battlepass_id == bp.id,
                )
            )
        return [_mission_view(session, m, progress, now) for m in missions]


def _mission_view(
    session: Session, mission: Mission, progress: UserBattlepass | None, now: datetime
) -> dict:
    period = period_key(mission.type, now)
    pct, done = 0, False
    if progress is not None:
        row = session.get(MissionProgress, (progress.id, mission.id, period))
        pct = row.progress if row else 0
        done = session.get(MissionCompletion, (progress.id, mission.id, period)) is not None
    return {
        "id": mission.id,
        "name": mission.name,
        "description": mission.description,
        "type": mission.type,
        "category": mission.category,
        "requirements": mission.requirements,
        "xpReward": mission.xp_reward,
        "xcoinsReward": mission.xcoins_reward,
        "period": period,
        "progress": 100 if done else pct,
        "completed": done,
    }


# ---------------------------------------------------------------------------
# XP
# ---------------------------------------------------------------------------
def grant_xp(
    engine: Engine,
    user_id: str,
    amount: int,
    *,
    battlepass_id: int | None = None,
    reason: str = "",
    now: datetime | None = None,
) -> XpGrantResult:
    """Add *amount* XP to the user's progress and raise their level to match."""
    if amount <= 0:
        raise ValueError("XP amount must be positive")
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, battlepass_id, now)
        progress = get_or_create_progress(session, user_id, bp.id)
        tiers = load_tiers(session, bp.id)
        old_level, new_level, current_xp = add_xp(session, progress, amount, tiers)

        missions = _active_missions(session, bp.id, now)
        completed = [
            r for r in _evaluate_missions(session, progress, missions, {}, tiers, now)
            if r.completed_now
        ]
        final_level = progress.current_level
        final_xp = progress.current_xp

        if final_level > old_level:
            create_notification(
                session, user_id,
                type_=NotificationType.BATTLEPASS_TIER,
                title="Level up!",
                message=f"You reached battlepass level {final_level}.",
                data={"battlepassId": bp.id, "level": final_level},
                now=now,
            )
        session.commit()

    if final_level > old_level:
        logger.info("User %s leveled up %d → %d on pass %s", user_id, old_level, final_level, bp.id)
    logger.debug("Granted %d XP to %s (%s): xp=%d", amount, user_id, reason or "grant", current_xp)
    return XpGrantResult(
        xp_added=amount,
        current_xp=final_xp,
        old_level=old_level,
        new_level=max(new_level, final_level),
        missions=completed,
    )


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------
def claim_reward(
    engine: Engine,
    user_id: str,
    level: int,
    track: Track | str,
    *,
    now: datetime | None = None,
) -> ClaimResult:
    """Claim the rewards of tier *level* on *track*.

    Raises TierNotFound, NotUnlocked, PremiumRequired or AlreadyClaimed.
    Nothing is granted unless this call inserted the claim row.
    """
    track = Track(track)
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        progress = get_or_create_progress(session, user_id, bp.id)
        tiers = load_tiers(session, bp.id)
        tier = next((t for t in tiers if t.level == level), None)
        if tier is None:
            raise TierNotFound(f"Tier {level} does not exist in {bp.name}.", level=level)

        current_level = _resync_level(session, progress, tiers)
        check_claim(
            current_level=current_level,
            is_premium=progress.is_premium,
            level=level,
            track=track,
            claimed=_claimed_set(session, progress.id),
        )
        rewards = tier.rewards_for(track)
        if not rewards:
            raise TierNotFound(f"Tier {level} has no {track.value} rewards.", level=level)

        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(ClaimedReward(
                    user_battlepass_id=progress.id, level=level,
                    track=track.value, claimed_at=now,
                ))
                session.flush()
        except IntegrityError:
            raise AlreadyClaimed(level=level, track=track.value)

        xcoins = sum(r.amount for r in rewards if r.type == RewardType.XCOINS)
        if xcoins:
            balance = apply_xcoins(
                session, user_id, xcoins,
                type_=TransactionType.REWARD,
                description=f"Battlepass reward - level {level} ({track.value})",
                metadata={"battlepass_id": bp.id, "level": level, "track": track.value},
            )
        else:
            balance = session.scalar(select(User.xcoins).where(User.id == user_id))

        labels = [describe_reward(r) for r in rewards]
        create_notification(
            session, user_id,
            type_=NotificationType.BATTLEPASS_REWARD_CLAIMED,
            title="Reward claimed",
            message=f"Level {level} ({track.value}): " + ", ".join(labels),
            data={"battlepassId": bp.id, "level": level, "track": track.value},
            now=now,
        )
        session.commit()

    logger.info("User %s claimed level %d %s rewards on pass %s", user_id, level, track, bp.id)
    return ClaimResult(
        level=level,
        track=track.value,
        rewards=[r.to_dict() for r in rewards],
        labels=labels,
        xcoins_granted=xcoins,
        balance=balance,
    )


# ---------------------------------------------------------------------------
# Premium purchase
# ---------------------------------------------------------------------------
def purchase_premium(
    engine: Engine, user_id: str, *, now: datetime | None = None
) -> PurchaseResult:
    """Buy the premium track of the running pass with Xcoins.

    Already-premium users get a no-op result.  On InsufficientFunds the
    transaction rolls back, leaving balance and flag untouched.
    """
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        price = bp.price
        progress = get_or_create_progress(session, user_id, bp.id)
        flipped = session.execute(
            update(UserBattlepass)
            .where(UserBattlepass.id == progress.id, UserBattlepass.is_premium.is_(False))
            .values(is_premium=True, purchased_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not flipped:
            balance = session.scalar(select(User.xcoins).where(User.id == user_id))
            session.rollback()
            return PurchaseResult(
                purchased=False,
                message="You already own the premium battlepass.",
                price=price,
                balance=balance,
            )

        balance = apply_xcoins(
            session, user_id, -price,
            type_=TransactionType.PURCHASE,
            description=f"Premium battlepass - {bp.season}",
            metadata={"battlepass_id": bp.id},
        )
        session.execute(
            update(Battlepass)
            .where(Battlepass.id == bp.id)
            .values(
                total_purchases=Battlepass.total_purchases + 1,
                total_revenue=Battlepass.total_revenue + price,
            )
            .execution_options(synchronize_session=False)
        )
        create_notification(
            session, user_id,
            type_=NotificationType.BATTLEPASS_PURCHASED,
            title="Premium battlepass unlocked",
            message=f"You unlocked the premium track of {bp.name}.",
            data={"battlepassId": bp.id, "price": price},
            priority=NotificationPriority.HIGH,
            now=now,
        )
        session.commit()

    logger.info("User %s bought premium on pass %s for %d Xcoins", user_id, bp.id, price)
    return PurchaseResult(
        purchased=True,
        message="Premium battlepass purchased.",
        price=price,
        balance=balance,
    )


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def battlepass_summary(bp: Battlepass, now: datetime) -> dict:
    return {
        "id": bp.id,
        "name": bp.name,
        "description": bp.description,
        "season": bp.season,
        "price": bp.price,
        "startsAt": _iso(bp.starts_at),
        "endsAt": _iso(bp.ends_at),
        "timeRemaining": time_remaining(as_utc(bp.ends_at), now),
    }


def _tier_view(tier: TierSpec, current_level: int, claimed: set[tuple[int, str]]) -> dict:
    return {
        "level": tier.level,
        "xpRequired": tier.xp_required,
        "freeRewards": [r.to_dict() for r in tier.free_rewards],
        "premiumRewards": [r.to_dict() for r in tier.premium_rewards],
        "unlocked": current_level >= tier.level,
        "claimed": {
            Track.FREE.value: (tier.level, Track.FREE.value) in claimed,
            Track.PREMIUM.value: (tier.level, Track.PREMIUM.value) in claimed,
        },
    }


def get_active_overview(engine: Engine, *, now: datetime | None = None) -> dict:
    """Public description of the running pass and its tier ladder."""
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        tiers = load_tiers(session, bp.id)
        return {
            "battlepass": battlepass_summary(bp, now),
            "tiers": [_tier_view(t, 0, set()) for t in tiers],
        }


def get_progress(engine: Engine, user_id: str, *, now: datetime | None = None) -> dict:
    """The user's standing on the running pass.  Creates progress on first call."""
    now = now or datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        progress = get_or_create_progress(session, user_id, bp.id)
        tiers = load_tiers(session, bp.id)
        current_level = _resync_level(session, progress, tiers)
        session.commit()

        claimed = _claimed_set(session, progress.id)
        next_tier = next((t for t in tiers if t.level > current_level), None)
        missions = [_mission_view(session, m, progress, now)
                    for m in _active_missions(session, bp.id, now)]
        return {
            "battlepass": battlepass_summary(bp, now),
            "progress": {
                "currentLevel": current_level,
                "currentXp": progress.current_xp,
                "totalXp": progress.total_xp,
                "nextLevelXp": next_tier.xp_required if next_tier else None,
                "isPremium": progress.is_premium,
                "purchasedAt": _iso(progress.purchased_at),
                "missionsCompleted": progress.missions_completed,
            },
            "tiers": [_tier_view(t, current_level, claimed) for t in tiers],
            "unclaimedRewards": unclaimed_rewards(
                tiers,
                current_level=current_level,
                is_premium=progress.is_premium,
                claimed=claimed,
            ),
            "missions": missions,
        }


def get_leaderboard(
    engine: Engine, limit: int = 10, *, now: datetime | None = None
) -> dict:
    """Top players on the running pass by level, then XP."""
    now = now or datetime.now(UTC)
    limit = max(1, min(limit, LEADERBOARD_MAX))
    with Session(engine, expire_on_commit=False) as session:
        bp = _require_battlepass(session, None, now)
        rows = session.execute(
            select(UserBattlepass, User.username)
            .join(User, User.id == UserBattlepass.user_id)
            .where(
                UserBattlepass.battlepass_id == bp.id,
                UserBattlepass.archived.is_(False),
            )
            .order_by(
                UserBattlepass.current_level.desc(),
                UserBattlepass.current_xp.desc(),
                UserBattlepass.id,
            )
            .limit(limit)
        ).all()
        return {
            "battlepass": battlepass_summary(bp, now),
            "entries": [
                {
                    "rank": rank,
                    "userId": progress.user_id,
                    "username": username,
                    "level": progress.current_level,
                    "xp": progress.current_xp,
                    "isPremium": progress.is_premium,
                    "missionsCompleted": progress.missions_completed,
                }
                for rank, (progress, username) in enumerate(rows, start=1)
            ],
        }


# ---------------------------------------------------------------------------
# Season end
# ---------------------------------------------------------------------------
def archive_season(engine: Engine, battlepass_id: int, *, actor_id: str | None = None) -> int:
    """Deactivate a pass and archive every progress row on it.

    Returns the number of progress rows archived.  Rows are kept, never deleted.
    """
    with Session(engine, expire_on_commit=False) as session:
        bp = session.get(Battlepass, battlepass_id)
        if bp is None:
            raise NotFound("Battlepass not found.")
        bp.active = False
        archived = session.execute(
            update(UserBattlepass)
            .where(
                UserBattlepass.battlepass_id == battlepass_id,
                UserBattlepass.archived.is_(False),
            )
            .values(archived=True)
            .execution_options(synchronize_session=False)
        ).rowcount
        session.commit()
    logger.info("Battlepass %s archived by %s: %d progress rows", battlepass_id, actor_id, archived)
    return archived
