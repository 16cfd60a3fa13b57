"""
skincase.database.seed — Default Battlepass & Achievement Seeder
==================================================================

Creates "Season 1" (90 days, 1000 Xcoins premium price, ten tiers and six
missions) and the default achievement set so a fresh install has something
to progress on.

Idempotent — the pass is skipped when a battlepass is already active, or
when a pass with the same season label exists; achievements are inserted
only for ids not yet present.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from skincase.database.models import Achievement, Battlepass, BattlepassTier, Mission

logger = logging.getLogger(__name__)

SEASON_LENGTH_DAYS = 90
DEFAULT_PRICE = 1000


def _r(type_: str, amount: int, name: str) -> dict:
    return {"type": type_, "amount": amount, "name": name}


# (level, xp_required, free rewards, premium rewards)
DEFAULT_TIERS: list[tuple[int, int, list[dict], list[dict]]] = [
    (1, 0, [_r("xcoins", 50, "50 Xcoins")],
     [_r("xcoins", 100, "100 Xcoins"), _r("title", 1, "Rookie")]),
    (2, 100, [_r("case", 1, "Starter Case")],
     [_r("case", 2, "2 Premium Cases")]),
    (3, 250, [_r("xcoins", 75, "75 Xcoins")],
     [_r("xcoins", 150, "150 Xcoins"), _r("badge", 1, "Active Player")]),
    (4, 450, [_r("case", 1, "Mil-Spec Case")],
     [_r("case", 1, "Restricted Case"), _r("title", 1, "Collector")]),
    (5, 700, [_r("xcoins", 100, "100 Xcoins")],
     [_r("xcoins", 200, "200 Xcoins"), _r("premium_days", 3, "3 Premium days")]),
    (6, 1000, [_r("case", 1, "Restricted Case")],
     [_r("case", 1, "Classified Case"), _r("badge", 1, "Expert")]),
    (7, 1350, [_r("xcoins", 125, "125 Xcoins")],
     [_r("xcoins", 250, "250 Xcoins"), _r("title", 1, "Case Master")]),
    (8, 1750, [_r("case", 1, "Classified Case")],
     [_r("case", 1, "Covert Case"), _r("premium_days", 7, "7 Premium days")]),
    (9, 2200, [_r("xcoins", 150, "150 Xcoins")],
     [_r("xcoins", 300, "300 Xcoins"), _r("badge", 1, "Legend")]),
    (10, 2700, [_r("case", 1, "Covert Case")],
     [_r("case", 1, "Legendary Case"), _r("title", 1, "Battlepass Legend"),
      _r("badge", 1, "Champion")]),
]

DEFAULT_MISSIONS: list[dict] = [
    {
        "id": "daily_case_open", "name": "Open a case",
        "description": "Open a case to earn XP",
        "type": "daily", "category": "cases",
        "requirements": {"casesOpened": 1}, "xp_reward": 50, "xcoins_reward": 10,
    },
    {
        "id": "daily_server_join", "name": "Join a server",
        "description": "Join a CS2 server to earn XP",
        "type": "daily", "category": "servers",
        "requirements": {"serversJoined": 1}, "xp_reward": 30, "xcoins_reward": 5,
    },
    {
        "id": "weekly_cases_5", "name": "Open 5 cases",
        "description": "Open 5 cases this week",
        "type": "weekly", "category": "cases",
        "requirements": {"casesOpened": 5}, "xp_reward": 200, "xcoins_reward": 50,
    },
    {
        "id": "weekly_servers_10", "name": "Join 10 servers",
        "description": "Join 10 different servers this week",
        "type": "weekly", "category": "servers",
        "requirements": {"serversJoined": 10}, "xp_reward": 150, "xcoins_reward": 25,
    },
    {
        "id": "seasonal_level_5", "name": "Reach level 5",
        "description": "Reach level 5 in the battlepass",
        "type": "seasonal", "category": "progression",
        "requirements": {"battlepassLevel": 5}, "xp_reward": 500, "xcoins_reward": 100,
    },
    {
        "id": "seasonal_level_10", "name": "Reach level 10",
        "description": "Reach level 10 in the battlepass",
        "type": "seasonal", "category": "progression",
        "requirements": {"battlepassLevel": 10}, "xp_reward": 1000, "xcoins_reward": 200,
    },
]


def seed_default_battlepass(engine: Engine, *, now: datetime | None = None) -> int | None:
    """Insert the default Season 1 pass.  Returns its id, or None if skipped."""
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        existing = session.scalar(
            select(Battlepass.id).where(
                Battlepass.active.is_(True),
                Battlepass.starts_at <= now,
                Battlepass.ends_at >= now,
            )
        )
        if existing is not None:
            logger.info("Active battlepass already present (id=%s) — seed skipped", existing)
            return None
        if session.scalar(select(Battlepass.id).where(Battlepass.season == "Season 1")):
            return None

        bp = Battlepass(
            name="Battlepass Season 1",
            description=(
                "The first SkinCase battlepass! Earn XP by playing and "
                "unlock exclusive rewards."
            ),
            season="Season 1",
            starts_at=now,
            ends_at=now + timedelta(days=SEASON_LENGTH_DAYS),
            price=DEFAULT_PRICE,
            active=True,
        )
        bp.tiers = [
            BattlepassTier(level=lvl, xp_required=xp, free_rewards=free, premium_rewards=prem)
            for lvl, xp, free, prem in DEFAULT_TIERS
        ]
        bp.missions = [Mission(starts_at=now, **m) for m in DEFAULT_MISSIONS]
        session.add(bp)
        session.commit()
        logger.info(
            "Seeded default battlepass: %d tiers, %d missions",
            len(DEFAULT_TIERS), len(DEFAULT_MISSIONS),
        )
        return bp.id


def _a(id_: str, name: str, description: str, icon: str, category: str, rarity: str,
       requirement: str, value: int | None, xp: int = 0, xcoins: int = 0, **extra) -> dict:
    return {
        "id": id_, "name": name, "description": description, "icon": icon,
        "category": category, "rarity": rarity, "requirement_type": requirement,
        "requirement_config": {} if value is None else {"value": value},
        "xp_reward": xp, "xcoins_reward": xcoins, **extra,
    }


DEFAULT_ACHIEVEMENTS: list[dict] = [
    _a("level_5", "Rising Star", "Reach battlepass level 5", "⭐",
       "progression", "common", "level_reached", 5, xp=100, xcoins=50),
    _a("level_10", "Battlepass Legend", "Reach battlepass level 10", "🏆",
       "progression", "epic", "level_reached", 10, xcoins=500, title="Legend"),
    _a("xp_master", "XP Master", "Earn 10,000 XP", "💎",
       "progression", "legendary", "xp_earned", 10_000, xcoins=1000, badge="XP Master"),
    _a("first_mission", "On a Mission", "Complete your first mission", "🎯",
       "seasonal", "common", "missions_completed", 1, xp=50),
    _a("mission_veteran", "Mission Veteran", "Complete 50 missions", "🎖️",
       "seasonal", "rare", "missions_completed", 50, xcoins=300),
    _a("first_claim", "First Loot", "Claim your first battlepass reward", "🎁",
       "progression", "common", "rewards_claimed", 1, xcoins=25),
    _a("collector", "Collector", "Claim 15 battlepass rewards", "📦",
       "progression", "uncommon", "rewards_claimed", 15, xcoins=150, title="Collector"),
    _a("spender", "Big Spender", "Spend 1,000 Xcoins", "💰",
       "cases", "uncommon", "xcoins_spent", 1000, xcoins=100),
    _a("high_roller", "High Roller", "Spend 10,000 Xcoins", "💸",
       "cases", "epic", "xcoins_spent", 10_000, xcoins=1000, badge="High Roller"),
    _a("premium_member", "Premium Member", "Unlock a premium battlepass", "👑",
       "special", "rare", "premium_owned", None, xp=200),
    _a("achievement_hunter", "Achievement Hunter", "Unlock 5 achievements", "🏅",
       "special", "rare", "achievements_unlocked", 5, xcoins=250),
    _a("founder", "Founder", "Played during the launch season", "🚀",
       "special", "legendary", "manual", None, is_hidden=True, badge="Founder"),
]


def seed_default_achievements(engine: Engine) -> int:
    """Insert missing default achievements.  Returns how many were added."""
    with Session(engine) as session:
        existing = set(session.scalars(select(Achievement.id)))
        missing = [a for a in DEFAULT_ACHIEVEMENTS if a["id"] not in existing]
        session.add_all(Achievement(**a) for a in missing)
        session.commit()
    if missing:
        logger.info("Seeded %d default achievements", len(missing))
    return len(missing)
