"""
skincase.engine.achievements — Achievement Requirement Checks
==============================================================

Handler-registry evaluation of achievement requirements.  Each
RequirementType maps to a pure handler that receives the achievement's
``requirement_config`` and an AchievementContext snapshot.

Pure calculation module.  No DB I/O, no HTTP.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from skincase.database.models import AchievementRarity, RequirementType

logger = logging.getLogger(__name__)

# Listing order, commonest first
RARITY_ORDER: dict[str, int] = {
    rarity.value: rank for rank, rarity in enumerate(AchievementRarity)
}


class AchievementTemplate(Protocol):
    id: str
    name: str
    requirement_type: str
    requirement_config: dict | None


# ---------------------------------------------------------------------------
# Achievement Context — passed to every requirement handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AchievementContext:
    """Snapshot of a user's standing.

    Parameters
    ----------
    level : Highest battlepass level reached on any pass.
    total_xp : XP earned across all passes.
    missions_completed : Mission completions across all passes.
    xcoins_spent : Xcoins debited from the ledger, as a positive number.
    rewards_claimed : Tier rewards claimed (each level + track counts once).
    is_premium : Whether the user owns any premium pass.
    achievements_unlocked : Achievements already unlocked.
    """

    level: int = 0
    total_xp: int = 0
    missions_completed: int = 0
    xcoins_spent: int = 0
    rewards_claimed: int = 0
    is_premium: bool = False
    achievements_unlocked: int = 0


# ---------------------------------------------------------------------------
# Requirement handlers — pure functions (config, ctx) → bool
# ---------------------------------------------------------------------------
def _threshold(config: dict) -> int | None:
    value = config.get("value")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _check_level_reached(config: dict, ctx: AchievementContext) -> bool:
    """Config: {"value": 10}"""
    value = _threshold(config)
    return value is not None and ctx.level >= value


def _check_xp_earned(config: dict, ctx: AchievementContext) -> bool:
    """Config: {"value": 10000}"""
    value = _threshold(config)
    return value is not None and ctx.total_xp >= value


def _check_missions_completed(config: dict, ctx: AchievementContext) -> bool:
    value = _threshold(config)
    return value is not None and ctx.missions_completed >= value


def _check_xcoins_spent(config: dict, ctx: AchievementContext) -> bool:
    value = _threshold(config)
    return value is not None and ctx.xcoins_spent >= value


def _check_rewards_claimed(config: dict, ctx: AchievementContext) -> bool:
    value = _threshold(config)
    return value is not None and ctx.rewards_claimed >= value


def _check_premium_owned(config: dict, ctx: AchievementContext) -> bool:
    """Fires once the user owns a premium pass.  Config is ignored."""
    return ctx.is_premium


def _check_achievements_unlocked(config: dict, ctx: AchievementContext) -> bool:
    """Meta achievement.  Config: {"value": 5}"""
    value = _threshold(config)
    return value is not None and ctx.achievements_unlocked >= value


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------
REQUIREMENT_HANDLERS: dict[str, Callable[[dict, AchievementContext], bool]] = {
    RequirementType.LEVEL_REACHED: _check_level_reached,
    RequirementType.XP_EARNED: _check_xp_earned,
    RequirementType.MISSIONS_COMPLETED: _check_missions_completed,
    RequirementType.XCOINS_SPENT: _check_xcoins_spent,
    RequirementType.REWARDS_CLAIMED: _check_rewards_claimed,
    RequirementType.PREMIUM_OWNED: _check_premium_owned,
    RequirementType.ACHIEVEMENTS_UNLOCKED: _check_achievements_unlocked,
    # RequirementType.MANUAL omitted — granted by an admin only
}


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def check_achievements(
    templates: Iterable[AchievementTemplate],
    ctx: AchievementContext,
    already_unlocked: set[str],
) -> list[str]:
    """Return the ids of *templates* newly satisfied by *ctx*.

    Templates in *already_unlocked*, and those with an unknown or manual
    requirement type, are skipped.
    """
    newly_unlocked: list[str] = []
    for template in templates:
        if template.id in already_unlocked:
            continue
        handler = REQUIREMENT_HANDLERS.get(template.requirement_type)
        if handler is None:
            continue
        if handler(template.requirement_config or {}, ctx):
            newly_unlocked.append(template.id)
            logger.debug("Achievement requirement met: %s", template.id)
    return newly_unlocked


def completion_percentage(unlocked: int, total: int) -> float:
    """Share of *total* unlocked, as a percentage rounded to 2 decimals."""
    if total <= 0:
        return 0.0
    return round(unlocked / total * 100, 2)
