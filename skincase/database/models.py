"""
skincase.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- users                — Accounts: Xcoins balance, ban state, permissions
- xcoin_transactions   — Append-only Xcoins ledger
- notifications        — In-app notifications (30-day expiry)
- battlepasses         — Seasonal passes with premium price + purchase stats
- battlepass_tiers     — Tier ladder with free / premium reward tracks
- missions             — Daily / weekly / seasonal missions granting XP
- user_battlepasses    — Per-user progress on a pass (lazily created)
- claimed_rewards      — (progress, level, track) claim guard
- mission_progress     — Per-period mission progress percent
- mission_completions  — (progress, mission, period) completion guard
- rate_limit_counters  — Fixed-window counters for the DB counter store
- achievements         — Unlockable achievement templates with requirement + rewards
- user_achievements    — (user, achievement) unlock guard
"""

from __future__ import annotations

import enum
import secrets
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all SkinCase ORM models."""


def new_object_id() -> str:
    """24-hex-char identifier, the public id format for users."""
    return secrets.token_hex(12)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RewardType(enum.StrEnum):
    XCOINS = "xcoins"
    CASE = "case"
    SKIN = "skin"
    TITLE = "title"
    BADGE = "badge"
    PREMIUM_DAYS = "premium_days"


class Track(enum.StrEnum):
    """Reward lane within a tier."""
    FREE = "free"
    PREMIUM = "premium"


class MissionType(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    SEASONAL = "seasonal"


class MissionCategory(enum.StrEnum):
    CASES = "cases"
    SERVERS = "servers"
    SOCIAL = "social"
    PROGRESSION = "progression"
    SPECIAL = "special"


class TransactionType(enum.StrEnum):
    PURCHASE = "purchase"
    BONUS = "bonus"
    REFUND = "refund"
    REWARD = "reward"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class NotificationType(enum.StrEnum):
    BATTLEPASS_PURCHASED = "battlepass_purchased"
    BATTLEPASS_REWARD_CLAIMED = "battlepass_reward_claimed"
    BATTLEPASS_TIER = "battlepass_tier"
    MISSION_COMPLETED = "mission_completed"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    ADMIN_MESSAGE = "admin_message"
    SECURITY_ALERT = "security_alert"


class NotificationPriority(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AchievementCategory(enum.StrEnum):
    CASES = "cases"
    SERVERS = "servers"
    PROGRESSION = "progression"
    SOCIAL = "social"
    SPECIAL = "special"
    SEASONAL = "seasonal"


class AchievementRarity(enum.StrEnum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class RequirementType(enum.StrEnum):
    """What an achievement measures.  MANUAL ones are only ever granted by hand."""
    LEVEL_REACHED = "level_reached"
    XP_EARNED = "xp_earned"
    MISSIONS_COMPLETED = "missions_completed"
    XCOINS_SPENT = "xcoins_spent"
    REWARDS_CLAIMED = "rewards_claimed"
    PREMIUM_OWNED = "premium_owned"
    ACHIEVEMENTS_UNLOCKED = "achievements_unlocked"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    xcoins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False)
    ban_reason: Mapped[str | None] = mapped_column(Text, default=None)
    ban_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    permissions: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    battlepasses: Mapped[list[UserBattlepass]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_xcoins_desc", "xcoins"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} banned={self.is_banned}>"


# ---------------------------------------------------------------------------
# XcoinTransaction — append-only ledger
# ---------------------------------------------------------------------------
class XcoinTransaction(Base):
    __tablename__ = "xcoin_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_xcoin_transactions_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<XcoinTransaction id={self.id} user={self.user_id} amount={self.amount}>"


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    data: Mapped[dict | None] = mapped_column(JSON, default=dict)
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default=NotificationPriority.MEDIUM.value
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type!r}>"


# ---------------------------------------------------------------------------
# Battlepass — seasonal pass
# ---------------------------------------------------------------------------
class Battlepass(Base):
    __tablename__ = "battlepasses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    season: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    total_purchases: Mapped[int] = mapped_column(Integer, default=0)
    total_revenue: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    tiers: Mapped[list[BattlepassTier]] = relationship(
        back_populates="battlepass",
        cascade="all, delete-orphan",
        order_by="BattlepassTier.level",
    )
    missions: Mapped[list[Mission]] = relationship(
        back_populates="battlepass", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_battlepasses_active_window", "active", "starts_at", "ends_at"),
    )

    def __repr__(self) -> str:
        return f"<Battlepass id={self.id} season={self.season!r} active={self.active}>"


class BattlepassTier(Base):
    __tablename__ = "battlepass_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    battlepass_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("battlepasses.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_required: Mapped[int] = mapped_column(Integer, nullable=False)
    # Ordered lists of {"type", "amount", "name"}
    free_rewards: Mapped[list[dict]] = mapped_column(JSON, default=list)
    premium_rewards: Mapped[list[dict]] = mapped_column(JSON, default=list)

    battlepass: Mapped[Battlepass] = relationship(back_populates="tiers")

    __table_args__ = (
        UniqueConstraint("battlepass_id", "level", name="uq_battlepass_tiers_level"),
    )

    def __repr__(self) -> str:
        return f"<BattlepassTier pass={self.battlepass_id} level={self.level} xp={self.xp_required}>"


class Mission(Base):
    __tablename__ = "missions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    battlepass_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("battlepasses.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    # metric → threshold, e.g. {"casesOpened": 5}
    requirements: Mapped[dict] = mapped_column(JSON, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    xcoins_reward: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    battlepass: Mapped[Battlepass] = relationship(back_populates="missions")

    def __repr__(self) -> str:
        return f"<Mission id={self.id!r} type={self.type}>"


# ---------------------------------------------------------------------------
# UserBattlepass — per-user progression on one pass
# ---------------------------------------------------------------------------
class UserBattlepass(Base):
    __tablename__ = "user_battlepasses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    battlepass_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("battlepasses.id", ondelete="CASCADE"), nullable=False
    )
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    purchased_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    current_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    missions_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="battlepasses")
    claimed: Mapped[list[ClaimedReward]] = relationship(
        back_populates="progress", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "battlepass_id", name="uq_user_battlepasses_user_pass"),
        Index("ix_user_battlepasses_rank", "battlepass_id", "current_level", "current_xp"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserBattlepass user={self.user_id} pass={self.battlepass_id} "
            f"lvl={self.current_level} xp={self.current_xp}>"
        )


class ClaimedReward(Base):
    """One row per claimed (level, track).  The primary key is the claim guard."""
    __tablename__ = "claimed_rewards"

    user_battlepass_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_battlepasses.id", ondelete="CASCADE"), primary_key=True
    )
    level: Mapped[int] = mapped_column(Integer, primary_key=True)
    track: Mapped[str] = mapped_column(String(10), primary_key=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    progress: Mapped[UserBattlepass] = relationship(back_populates="claimed")

    def __repr__(self) -> str:
        return f"<ClaimedReward progress={self.user_battlepass_id} level={self.level} track={self.track}>"


class MissionProgress(Base):
    __tablename__ = "mission_progress"

    user_battlepass_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_battlepasses.id", ondelete="CASCADE"), primary_key=True
    )
    mission_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("missions.id", ondelete="CASCADE"), primary_key=True
    )
    period_key: Mapped[str] = mapped_column(String(16), primary_key=True)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<MissionProgress mission={self.mission_id!r} period={self.period_key} pct={self.progress}>"


class MissionCompletion(Base):
    """Completion guard: one row per (progress, mission, period)."""
    __tablename__ = "mission_completions"

    user_battlepass_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_battlepasses.id", ondelete="CASCADE"), primary_key=True
    )
    mission_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("missions.id", ondelete="CASCADE"), primary_key=True
    )
    period_key: Mapped[str] = mapped_column(String(16), primary_key=True)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<MissionCompletion mission={self.mission_id!r} period={self.period_key}>"


# ---------------------------------------------------------------------------
# RateLimitCounter — durable fixed-window counters
# ---------------------------------------------------------------------------
class RateLimitCounter(Base):
    __tablename__ = "rate_limit_counters"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    hits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reset_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_rate_limit_counters_reset_at", "reset_at"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitCounter key={self.key!r} hits={self.hits}>"


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    icon: Mapped[str] = mapped_column(String(16), default="")
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    rarity: Mapped[str] = mapped_column(
        String(10), nullable=False, default=AchievementRarity.COMMON.value
    )
    requirement_type: Mapped[str] = mapped_column(String(30), nullable=False)
    # Handler-specific, e.g. {"value": 5}
    requirement_config: Mapped[dict] = mapped_column(JSON, default=dict)
    xp_reward: Mapped[int] = mapped_column(Integer, default=0)
    xcoins_reward: Mapped[int] = mapped_column(Integer, default=0)
    title: Mapped[str | None] = mapped_column(String(50), default=None)
    badge: Mapped[str | None] = mapped_column(String(50), default=None)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    unlock_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_achievements_active_category", "active", "category"),
    )

    def __repr__(self) -> str:
        return f"<Achievement id={self.id!r} rarity={self.rarity}>"


class UserAchievement(Base):
    """One row per unlock.  The primary key is the unlock guard."""
    __tablename__ = "user_achievements"

    user_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<UserAchievement user={self.user_id} achievement={self.achievement_id!r}>"
