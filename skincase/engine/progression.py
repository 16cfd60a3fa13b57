"""
skincase.engine.progression — Battlepass Tier Ladder & Claim Rules
===================================================================

Pure calculation module.  No DB I/O, no HTTP.

A battlepass is a ladder of tiers sorted by level, each unlocked at an
XP threshold.  A user's level is the highest tier whose threshold their
XP meets; every tier at or below that level can have its free track
claimed, and its premium track too once the pass is premium.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from skincase.database.models import RewardType, Track
from skincase.errors import AlreadyClaimed, NotUnlocked, PremiumRequired

logger = logging.getLogger(__name__)

__all__ = [
    "RewardItem",
    "TierSpec",
    "check_claim",
    "describe_reward",
    "level_for_xp",
    "time_remaining",
    "unclaimed_rewards",
    "validate_ladder",
]


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardItem:
    type: RewardType
    amount: int
    name: str

    @classmethod
    def from_dict(cls, raw: dict) -> RewardItem:
        return cls(
            type=RewardType(raw["type"]),
            amount=int(raw.get("amount", 0)),
            name=raw.get("name") or "",
        )

    def to_dict(self) -> dict:
        return {"type": self.type.value, "amount": self.amount, "name": self.name}


@dataclass(frozen=True, slots=True)
class TierSpec:
    level: int
    xp_required: int
    free_rewards: tuple[RewardItem, ...] = field(default_factory=tuple)
    premium_rewards: tuple[RewardItem, ...] = field(default_factory=tuple)

    @classmethod
    def from_row(cls, row) -> TierSpec:
        """Build from a :class:`~skincase.database.models.BattlepassTier`."""
        return cls(
            level=row.level,
            xp_required=row.xp_required,
            free_rewards=tuple(RewardItem.from_dict(r) for r in row.free_rewards or ()),
            premium_rewards=tuple(RewardItem.from_dict(r) for r in row.premium_rewards or ()),
        )

    def rewards_for(self, track: Track) -> tuple[RewardItem, ...]:
        return self.premium_rewards if track == Track.PREMIUM else self.free_rewards


# ---------------------------------------------------------------------------
# Ladder checks
# ---------------------------------------------------------------------------
def validate_ladder(tiers: Sequence[TierSpec]) -> None:
    """Raise ValueError unless levels ascend strictly and XP never decreases."""
    for prev, cur in zip(tiers, tiers[1:]):
        if cur.level <= prev.level:
            raise ValueError(f"tier levels must ascend: {prev.level} then {cur.level}")
        if cur.xp_required < prev.xp_required:
            raise ValueError(
                f"xp_required must not decrease: level {cur.level} needs "
                f"{cur.xp_required} < {prev.xp_required}"
            )


def level_for_xp(tiers: Sequence[TierSpec], xp: int) -> int:
    """Highest tier level whose ``xp_required <= xp``; 0 if none qualify.

    *tiers* must be sorted by level (see :func:`validate_ladder`).  Equal
    thresholds resolve to the highest of the tied levels.
    """
    thresholds = [t.xp_required for t in tiers]
    idx = bisect_right(thresholds, xp)
    if idx == 0:
        return 0
    return tiers[idx - 1].level


# ---------------------------------------------------------------------------
# Claim rules
# ---------------------------------------------------------------------------
def check_claim(
    *,
    current_level: int,
    is_premium: bool,
    level: int,
    track: Track,
    claimed: Iterable[tuple[int, str]],
) -> None:
    """Raise the first failing rule for claiming (*level*, *track*).

    Order: NotUnlocked → PremiumRequired → AlreadyClaimed.
    """
    if current_level < level:
        raise NotUnlocked(
            f"Tier {level} unlocks at level {level}; you are level {current_level}.",
            level=level,
            currentLevel=current_level,
        )
    if track == Track.PREMIUM and not is_premium:
        raise PremiumRequired(level=level)
    if (level, track.value) in set(claimed):
        raise AlreadyClaimed(level=level, track=track.value)


def unclaimed_rewards(
    tiers: Sequence[TierSpec],
    *,
    current_level: int,
    is_premium: bool,
    claimed: Iterable[tuple[int, str]],
) -> list[dict]:
    """List every (tier, track) the user could claim right now."""
    claimed_set = set(claimed)
    out: list[dict] = []
    for tier in tiers:
        if tier.level > current_level:
            break
        tracks = [Track.FREE, Track.PREMIUM] if is_premium else [Track.FREE]
        for track in tracks:
            rewards = tier.rewards_for(track)
            if rewards and (tier.level, track.value) not in claimed_set:
                out.append({
                    "level": tier.level,
                    "track": track.value,
                    "rewards": [r.to_dict() for r in rewards],
                })
    return out


def describe_reward(item: RewardItem) -> str:
    """Short label shown in claim responses and notifications."""
    match item.type:
        case RewardType.XCOINS:
            return f"{item.amount} Xcoins"
        case RewardType.PREMIUM_DAYS:
            return f"{item.amount} Premium days"
        case _:
            return f"{item.type.value.replace('_', ' ').title()}: {item.name}"


def time_remaining(ends_at: datetime, now: datetime) -> dict[str, int] | None:
    """Days/hours/minutes until *ends_at*, or None once it has passed."""
    left = (ends_at - now).total_seconds()
    if left <= 0:
        return None
    minutes = int(left // 60)
    return {
        "days": minutes // (60 * 24),
        "hours": (minutes // 60) % 24,
        "minutes": minutes % 60,
    }
