"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import itertools
import os

# ---------------------------------------------------------------------------
# Ensure valid signing secrets are always set for test runs.
# This must happen before any import of skincase.api.deps which validates
# the secrets at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
_TEST_SESSION_SECRET = "test-session-secret-for-pytest-" + "y" * 40
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("SESSION_SECRET", _TEST_SESSION_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from skincase.config import SkincaseConfig  # noqa: E402
from skincase.database.models import Base  # noqa: E402

STRONG_PASSWORD = "Str0ng!Pass"

_counter = itertools.count(1)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all SkinCase tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for tests that need real concurrent connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'skincase.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def battlepass_id(db_engine: Engine) -> int:
    """Seed the default Season 1 pass and return its id."""
    from skincase.database.seed import seed_default_battlepass

    return seed_default_battlepass(db_engine)


def make_user(engine: Engine, **overrides):
    """Create a user with a unique name.  Usable as a factory from any test."""
    from skincase.services.user_service import create_user

    n = next(_counter)
    kwargs = {
        "username": f"player_{n}",
        "email": f"player{n}@example.com",
        "password": STRONG_PASSWORD,
    }
    kwargs.update(overrides)
    return create_user(engine, **kwargs)


@pytest.fixture
def user_factory(db_engine: Engine):
    def _make(**overrides):
        return make_user(db_engine, **overrides)
    return _make


def token_for(user) -> str:
    from skincase.api.deps import create_access_token

    return create_access_token(user, ttl_hours=1)


def auth_headers(user, csrf: str | None = None) -> dict:
    headers = {"Authorization": f"Bearer {token_for(user)}"}
    if csrf:
        headers["X-CSRF-Token"] = csrf
    return headers


@pytest.fixture
def test_config() -> SkincaseConfig:
    return SkincaseConfig()


@pytest.fixture
def client(db_engine: Engine, test_config: SkincaseConfig):
    """FastAPI TestClient over the in-memory engine with a fresh memory limiter.

    The lifespan is not run (no ``with``), so the limiter and proxy trust
    are configured here.
    """
    from fastapi.testclient import TestClient

    from skincase.api.deps import get_config, get_engine
    from skincase.api.main import app
    from skincase.api.rate_limit import MemoryCounterStore, configure_rate_limiter

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: test_config
    app.state.trust_proxy = test_config.trust_proxy
    configure_rate_limiter(store=MemoryCounterStore(), trust_proxy=test_config.trust_proxy)

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


def fetch_csrf(client) -> str:
    """Start a session on *client* and return its CSRF token."""
    resp = client.get("/api/auth/csrf-token")
    assert resp.status_code == 200
    return resp.json()["csrfToken"]
