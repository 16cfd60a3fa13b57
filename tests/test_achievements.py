"""
tests/test_achievements.py — Achievement Engine, Service & Route Tests
=======================================================================

Covers the requirement handler registry with mock templates, the unlock
pipeline against the seeded Season 1 pass and default achievement set,
and the achievement endpoints.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import auth_headers, fetch_csrf, make_user
from skincase.database.models import (
    Achievement,
    Notification,
    NotificationPriority,
    NotificationType,
    RequirementType,
    User,
    UserBattlepass,
    XcoinTransaction,
)
from skincase.database.seed import DEFAULT_ACHIEVEMENTS, seed_default_achievements
from skincase.engine.achievements import (
    AchievementContext,
    check_achievements,
    completion_percentage,
)
from skincase.errors import Conflict, NotFound
from skincase.services import achievement_service as svc
from skincase.services import battlepass_service as bps

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _tmpl(id: str, requirement_type: str, config: dict | None = None) -> MagicMock:
    """Create a mock Achievement row."""
    t = MagicMock()
    t.id = id
    t.name = id.replace("_", " ").title()
    t.requirement_type = requirement_type
    t.requirement_config = config
    return t


def _ctx(**kwargs) -> AchievementContext:
    return AchievementContext(**kwargs)


def _balance(engine, user_id: str) -> int:
    with Session(engine) as session:
        return session.scalar(select(User.xcoins).where(User.id == user_id))


def _ids(achievements: list[dict]) -> list[str]:
    return [a["id"] for a in achievements]


@pytest.fixture
def templates():
    return [
        _tmpl("level_5", RequirementType.LEVEL_REACHED, {"value": 5}),
        _tmpl("xp_master", RequirementType.XP_EARNED, {"value": 10_000}),
        _tmpl("first_mission", RequirementType.MISSIONS_COMPLETED, {"value": 1}),
        _tmpl("spender", RequirementType.XCOINS_SPENT, {"value": 1000}),
        _tmpl("first_claim", RequirementType.REWARDS_CLAIMED, {"value": 1}),
        _tmpl("premium_member", RequirementType.PREMIUM_OWNED),
        _tmpl("hunter", RequirementType.ACHIEVEMENTS_UNLOCKED, {"value": 5}),
        _tmpl("founder", RequirementType.MANUAL),
    ]


@pytest.fixture
def seeded(db_engine):
    """Default achievements only, no battlepass."""
    seed_default_achievements(db_engine)
    return db_engine


@pytest.fixture
def engine(db_engine, battlepass_id):
    """Season 1 plus the default achievements."""
    seed_default_achievements(db_engine)
    return db_engine


# ===========================================================================
# Requirement handlers
# ===========================================================================
class TestRequirementTypes:
    def test_nothing_met_by_a_fresh_user(self, templates):
        assert check_achievements(templates, _ctx(), set()) == []

    def test_level_reached(self, templates):
        assert check_achievements(templates, _ctx(level=5), set()) == ["level_5"]

    def test_level_below(self, templates):
        assert check_achievements(templates, _ctx(level=4), set()) == []

    def test_xp_earned(self, templates):
        assert check_achievements(templates, _ctx(total_xp=10_000), set()) == ["xp_master"]

    def test_missions_completed(self, templates):
        assert check_achievements(templates, _ctx(missions_completed=1), set()) == ["first_mission"]

    def test_xcoins_spent(self, templates):
        assert check_achievements(templates, _ctx(xcoins_spent=999), set()) == []
        assert check_achievements(templates, _ctx(xcoins_spent=1000), set()) == ["spender"]

    def test_rewards_claimed(self, templates):
        assert check_achievements(templates, _ctx(rewards_claimed=3), set()) == ["first_claim"]

    def test_premium_owned(self, templates):
        assert check_achievements(templates, _ctx(is_premium=True), set()) == ["premium_member"]

    def test_achievements_unlocked(self, templates):
        assert check_achievements(templates, _ctx(achievements_unlocked=5), set()) == ["hunter"]

    def test_manual_never_auto_unlocked(self):
        founder = _tmpl("founder", RequirementType.MANUAL)
        assert check_achievements([founder], _ctx(level=99, is_premium=True), set()) == []


class TestUnlockedFiltering:
    def test_already_unlocked_skipped(self, templates):
        ctx = _ctx(level=10, is_premium=True)
        assert check_achievements(templates, ctx, {"level_5"}) == ["premium_member"]

    def test_several_at_once_in_template_order(self, templates):
        ctx = _ctx(level=6, missions_completed=2, xcoins_spent=1500)
        assert check_achievements(templates, ctx, set()) == ["level_5", "first_mission", "spender"]


class TestEdgeCases:
    def test_missing_value(self):
        tmpl = _tmpl("a", RequirementType.LEVEL_REACHED, {})
        assert check_achievements([tmpl], _ctx(level=50), set()) == []

    def test_non_integer_value(self):
        tmpl = _tmpl("a", RequirementType.XP_EARNED, {"value": "100"})
        assert check_achievements([tmpl], _ctx(total_xp=500), set()) == []

    def test_null_config_treated_as_empty(self):
        tmpl = _tmpl("a", RequirementType.PREMIUM_OWNED, None)
        assert check_achievements([tmpl], _ctx(is_premium=True), set()) == ["a"]

    def test_unknown_requirement_type(self):
        assert check_achievements([_tmpl("a", "invites_sent", {"value": 1})], _ctx(), set()) == []

    def test_completion_percentage(self):
        assert completion_percentage(2, 12) == 16.67
        assert completion_percentage(0, 0) == 0.0


# ===========================================================================
# Seeding
# ===========================================================================
class TestSeedAchievements:
    def test_idempotent(self, db_engine):
        assert seed_default_achievements(db_engine) == len(DEFAULT_ACHIEVEMENTS)
        assert seed_default_achievements(db_engine) == 0

    def test_missing_ids_restored(self, seeded):
        with Session(seeded) as session:
            session.delete(session.get(Achievement, "spender"))
            session.commit()
        assert seed_default_achievements(seeded) == 1


# ===========================================================================
# Unlocks
# ===========================================================================
class TestCheckUserAchievements:
    def test_nothing_for_a_new_user(self, engine):
        user = make_user(engine)
        assert svc.check_user_achievements(engine, user.id) == []

    def test_premium_purchase_unlocks_spender_and_premium(self, engine):
        user = make_user(engine)
        bps.purchase_premium(engine, user.id)

        unlocked = svc.check_user_achievements(engine, user.id)
        assert _ids(unlocked) == ["premium_member", "spender"]
        assert _balance(engine, user.id) == 100
        with Session(engine) as session:
            progress = session.scalar(select(UserBattlepass).where(UserBattlepass.user_id == user.id))
            assert progress.total_xp == 200

    def test_level_and_mission_progress(self, engine):
        user = make_user(engine)
        bps.grant_xp(engine, user.id, 700)   # level 5 → seasonal_level_5 completes

        unlocked = svc.check_user_achievements(engine, user.id)
        assert _ids(unlocked) == ["first_mission", "level_5"]
        assert _balance(engine, user.id) == 1000 + 100 + 50
        with Session(engine) as session:
            progress = session.scalar(select(UserBattlepass).where(UserBattlepass.user_id == user.id))
            assert progress.total_xp == 700 + 500 + 100 + 50

    def test_second_check_unlocks_nothing(self, engine):
        user = make_user(engine)
        bps.grant_xp(engine, user.id, 700)
        svc.check_user_achievements(engine, user.id)
        assert svc.check_user_achievements(engine, user.id) == []

    def test_unlocks_chain_into_meta_achievement(self, engine):
        user = make_user(engine)
        for achievement_id in ("founder", "first_claim", "level_10"):
            svc.grant_achievement(engine, user.id, achievement_id, actor_id="admin")
        bps.purchase_premium(engine, user.id)

        unlocked = svc.check_user_achievements(engine, user.id)
        assert _ids(unlocked) == ["premium_member", "spender", "achievement_hunter"]
        assert _balance(engine, user.id) == 1000 + 25 + 500 - 1000 + 100 + 250

    def test_rewards_recorded(self, engine):
        user = make_user(engine)
        bps.purchase_premium(engine, user.id)
        svc.check_user_achievements(engine, user.id)
        with Session(engine) as session:
            ledger = session.scalars(
                select(XcoinTransaction).where(
                    XcoinTransaction.user_id == user.id, XcoinTransaction.amount > 0
                )
            ).all()
            assert [(tx.type, tx.amount) for tx in ledger] == [("reward", 100)]
            assert ledger[0].metadata_ == {"achievement_id": "spender"}

            notes = session.scalars(
                select(Notification).where(
                    Notification.user_id == user.id,
                    Notification.type == NotificationType.ACHIEVEMENT_UNLOCKED.value,
                )
            ).all()
            assert len(notes) == 2
            assert {n.priority for n in notes} == {NotificationPriority.HIGH.value}
            assert session.get(Achievement, "spender").unlock_count == 1

    def test_unknown_user(self, engine):
        with pytest.raises(NotFound):
            svc.check_user_achievements(engine, "f" * 24)


class TestGrantAchievement:
    def test_manual_grant(self, seeded):
        user = make_user(seeded)
        granted = svc.grant_achievement(seeded, user.id, "founder", actor_id="admin")
        assert granted["id"] == "founder"
        assert granted["unlockCount"] == 1
        assert granted["unlockedAt"] is not None

    def test_xp_reward_skipped_without_active_pass(self, seeded):
        user = make_user(seeded)
        svc.grant_achievement(seeded, user.id, "level_5", actor_id="admin")
        assert _balance(seeded, user.id) == 1050
        with Session(seeded) as session:
            assert session.scalar(select(UserBattlepass).where(UserBattlepass.user_id == user.id)) is None

    def test_duplicate_grant(self, seeded):
        user = make_user(seeded)
        svc.grant_achievement(seeded, user.id, "founder", actor_id="admin")
        with pytest.raises(Conflict):
            svc.grant_achievement(seeded, user.id, "founder", actor_id="admin")

    def test_unknown_achievement(self, seeded):
        user = make_user(seeded)
        with pytest.raises(NotFound):
            svc.grant_achievement(seeded, user.id, "no_such_thing", actor_id="admin")


# ===========================================================================
# Views
# ===========================================================================
class TestAchievementViews:
    def test_listing_hides_hidden_and_orders_by_rarity(self, seeded):
        listed = svc.list_achievements(seeded)
        assert "founder" not in _ids(listed)
        assert len(listed) == len(DEFAULT_ACHIEVEMENTS) - 1
        assert listed[0]["rarity"] == "common"
        assert listed[-1]["rarity"] == "legendary"
        assert "unlocked" not in listed[0]

    def test_hidden_listed_once_unlocked(self, seeded):
        user = make_user(seeded)
        svc.grant_achievement(seeded, user.id, "founder", actor_id="admin")
        listed = {a["id"]: a for a in svc.list_achievements(seeded, user.id)}
        assert listed["founder"]["unlocked"] is True
        assert listed["spender"]["unlocked"] is False

    def test_filters(self, seeded):
        assert set(_ids(svc.list_achievements(seeded, category="cases"))) == {"spender", "high_roller"}
        assert _ids(svc.list_achievements(seeded, rarity="legendary")) == ["xp_master"]

    def test_inactive_excluded(self, seeded):
        with Session(seeded) as session:
            session.get(Achievement, "spender").active = False
            session.commit()
        assert "spender" not in _ids(svc.list_achievements(seeded))

    def test_user_stats(self, seeded):
        user = make_user(seeded)
        svc.grant_achievement(seeded, user.id, "level_5", actor_id="admin", now=T0)
        svc.grant_achievement(
            seeded, user.id, "first_mission", actor_id="admin", now=T0 + timedelta(minutes=1)
        )

        result = svc.get_user_achievements(seeded, user.id)
        assert _ids(result["achievements"]) == ["level_5", "first_mission"]
        assert result["stats"] == {
            "unlocked": 2,
            "total": 12,
            "completionPercentage": 16.67,
            "categoryBreakdown": {"progression": 1, "seasonal": 1},
        }

    def test_counts(self, seeded):
        assert svc.category_counts(seeded) == [
            {"category": "cases", "count": 2},
            {"category": "progression", "count": 5},
            {"category": "seasonal", "count": 2},
            {"category": "special", "count": 3},
        ]
        assert [r["rarity"] for r in svc.rarity_counts(seeded)] == [
            "common", "uncommon", "rare", "epic", "legendary",
        ]

    def test_leaderboard(self, seeded):
        leader = make_user(seeded)
        runner_up = make_user(seeded)
        make_user(seeded)
        for achievement_id in ("founder", "level_5"):
            svc.grant_achievement(seeded, leader.id, achievement_id, actor_id="admin")
        svc.grant_achievement(seeded, runner_up.id, "founder", actor_id="admin")

        board = svc.get_achievement_leaderboard(seeded)
        assert [(e["rank"], e["userId"], e["achievementCount"]) for e in board] == [
            (1, leader.id, 2),
            (2, runner_up.id, 1),
        ]


# ===========================================================================
# Through the API
# ===========================================================================
class TestAchievementRoutes:
    def test_listing_is_public(self, client, seeded):
        resp = client.get("/api/achievements")
        assert resp.status_code == 200
        assert len(resp.json()["achievements"]) == len(DEFAULT_ACHIEVEMENTS) - 1

    def test_listing_marks_unlocked_for_signed_in_user(self, client, seeded):
        user = make_user(seeded)
        svc.grant_achievement(seeded, user.id, "level_5", actor_id="admin")
        resp = client.get("/api/achievements?category=progression", headers=auth_headers(user))
        unlocked = {a["id"] for a in resp.json()["achievements"] if a["unlocked"]}
        assert unlocked == {"level_5"}

    def test_unknown_rarity(self, client, seeded):
        resp = client.get("/api/achievements?rarity=mythic")
        assert resp.status_code == 400
        assert resp.json()["details"][0]["message"] == "Unknown achievement rarity"

    def test_categories_and_rarities(self, client, seeded):
        categories = client.get("/api/achievements/categories").json()["categories"]
        assert {"category": "special", "count": 3} in categories
        rarities = client.get("/api/achievements/rarities").json()["rarities"]
        assert rarities[0] == {"rarity": "common", "count": 3}

    def test_check_requires_csrf(self, client, engine):
        user = make_user(engine)
        resp = client.post("/api/achievements/check", headers=auth_headers(user))
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_invalid"

    def test_check(self, client, engine):
        user = make_user(engine)
        csrf = fetch_csrf(client)
        client.post("/api/battlepass/purchase", headers=auth_headers(user, csrf))
        resp = client.post("/api/achievements/check", headers=auth_headers(user, csrf))
        assert resp.status_code == 200
        assert _ids(resp.json()["achievements"]) == ["premium_member", "spender"]

        again = client.post("/api/achievements/check", headers=auth_headers(user, csrf))
        assert again.json() == {"achievements": []}

    def test_user_achievements_owner_or_admin(self, client, seeded):
        owner = make_user(seeded)
        other = make_user(seeded)
        admin = make_user(seeded, is_admin=True)
        path = f"/api/achievements/users/{owner.id}"

        assert client.get(path, headers=auth_headers(owner)).status_code == 200
        assert client.get(path, headers=auth_headers(admin)).json()["stats"]["unlocked"] == 0
        denied = client.get(path, headers=auth_headers(other))
        assert denied.status_code == 403
        assert denied.json()["error"] == "forbidden"

    def test_user_achievements_invalid_id(self, client, seeded):
        user = make_user(seeded)
        resp = client.get("/api/achievements/users/nope", headers=auth_headers(user))
        assert resp.status_code == 400

    def test_leaderboard(self, client, seeded):
        user = make_user(seeded)
        svc.grant_achievement(seeded, user.id, "founder", actor_id="admin")
        resp = client.get("/api/achievements/leaderboard?limit=5")
        assert resp.json()["entries"] == [
            {"rank": 1, "userId": user.id, "username": user.username, "achievementCount": 1},
        ]

    def test_admin_grant(self, client, seeded):
        admin = make_user(seeded, is_admin=True)
        target = make_user(seeded)
        csrf = fetch_csrf(client)
        path = f"/api/admin/users/{target.id}/achievements/founder"

        first = client.post(path, headers=auth_headers(admin, csrf))
        assert first.status_code == 200
        assert first.json()["id"] == "founder"
        assert client.post(path, headers=auth_headers(admin, csrf)).status_code == 409
        missing = client.post(
            f"/api/admin/users/{target.id}/achievements/unknown", headers=auth_headers(admin, csrf)
        )
        assert missing.status_code == 404

    def test_admin_grant_needs_permission(self, client, seeded):
        user = make_user(seeded)
        csrf = fetch_csrf(client)
        resp = client.post(
            f"/api/admin/users/{user.id}/achievements/founder", headers=auth_headers(user, csrf)
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "insufficient_permissions"
