"""
tests/test_database.py — Engine, Schema & Seed Tests
=====================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from skincase.database.engine import create_db_engine, get_session, init_db, run_db
from skincase.database.models import Battlepass, BattlepassTier, Mission, as_utc, new_object_id
from skincase.database.seed import DEFAULT_MISSIONS, DEFAULT_TIERS, seed_default_battlepass
from skincase.engine.progression import TierSpec, validate_ladder


class TestHelpers:
    def test_object_ids_are_24_hex(self):
        oid = new_object_id()
        assert len(oid) == 24
        int(oid, 16)

    def test_as_utc(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert as_utc(naive).tzinfo is UTC
        assert as_utc(None) is None


class TestEngine:
    def test_requires_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            create_db_engine()

    def test_sqlite_url(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'x.db'}")
        init_db(engine)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(Battlepass)) == 1

    def test_get_session_rolls_back_on_error(self, db_engine, battlepass_id):
        with pytest.raises(ZeroDivisionError):
            with get_session(db_engine) as session:
                session.get(Battlepass, battlepass_id).price = 1
                1 / 0
        with Session(db_engine) as session:
            assert session.get(Battlepass, battlepass_id).price == 1000

    def test_run_db(self, db_engine, battlepass_id):
        import asyncio

        def price(engine):
            with Session(engine) as session:
                return session.get(Battlepass, battlepass_id).price

        assert asyncio.run(run_db(price, db_engine)) == 1000


class TestSeed:
    def test_default_ladder_is_valid(self):
        tiers = [
            TierSpec.from_row(BattlepassTier(level=lvl, xp_required=xp, free_rewards=f, premium_rewards=p))
            for lvl, xp, f, p in DEFAULT_TIERS
        ]
        validate_ladder(tiers)

    def test_seed_contents(self, db_engine, battlepass_id):
        with Session(db_engine) as session:
            bp = session.get(Battlepass, battlepass_id)
            assert (bp.season, bp.price, bp.active) == ("Season 1", 1000, True)
            assert as_utc(bp.ends_at) - as_utc(bp.starts_at) == timedelta(days=90)
            assert len(bp.tiers) == len(DEFAULT_TIERS)
            assert {m.id for m in bp.missions} == {m["id"] for m in DEFAULT_MISSIONS}

    def test_seed_is_idempotent(self, db_engine, battlepass_id):
        assert seed_default_battlepass(db_engine) is None
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Battlepass)) == 1
            assert session.scalar(select(func.count()).select_from(Mission)) == 6

    def test_seed_skipped_when_season_label_exists(self, db_engine, battlepass_id):
        later = datetime.now(UTC) + timedelta(days=200)
        assert seed_default_battlepass(db_engine, now=later) is None
