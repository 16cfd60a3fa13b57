"""
skincase.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn skincase.api.main:app --reload --port 8000

Request path, outermost first: security logging → security headers →
CORS → signed-cookie session → input sanitizer → routing, where every
route also passes the ``general`` rate limiter.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

load_dotenv()

from skincase import __version__  # noqa: E402
from skincase.api.auth import router as auth_router  # noqa: E402
from skincase.api.deps import SESSION_SECRET, get_config, get_engine, is_production  # noqa: E402
from skincase.api.errors import install_exception_handlers  # noqa: E402
from skincase.api.headers import SecurityHeadersMiddleware  # noqa: E402
from skincase.api.rate_limit import (  # noqa: E402
    DatabaseCounterStore,
    configure_rate_limiter,
    rate_limiter,
)
from skincase.api.routes.achievements import router as achievements_router  # noqa: E402
from skincase.api.routes.admin import router as admin_router  # noqa: E402
from skincase.api.routes.battlepass import router as battlepass_router  # noqa: E402
from skincase.api.routes.users import router as users_router  # noqa: E402
from skincase.api.routes.xcoins import router as xcoins_router  # noqa: E402
from skincase.api.sanitize import SanitizeMiddleware  # noqa: E402
from skincase.api.security_log import SecurityLogMiddleware  # noqa: E402
from skincase.database.engine import init_db  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — schema, seed data and rate limiter."""
    cfg = get_config()
    engine = get_engine()
    init_db(engine)

    app.state.trust_proxy = cfg.trust_proxy
    store = DatabaseCounterStore(engine)
    purged = store.purge_expired()
    if purged:
        logger.info("Purged %d expired rate limit counters", purged)
    configure_rate_limiter(
        store=store,
        overrides=cfg.rate_limit_overrides,
        trust_proxy=cfg.trust_proxy,
    )
    logger.info("%s API started — engine ready (%s)", cfg.app_name, engine.url.database)
    yield
    logger.info("%s API shutting down", cfg.app_name)


app = FastAPI(
    title="SkinCase API",
    version=__version__,
    lifespan=lifespan,
    dependencies=[Depends(rate_limiter("general"))],
)
install_exception_handlers(app)

# Added innermost first
app.add_middleware(SanitizeMiddleware)
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    session_cookie="skincase_session",
    same_site="lax",
    https_only=is_production(),
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware, production=is_production())
app.add_middleware(SecurityLogMiddleware)

# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(battlepass_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(xcoins_router, prefix="/api")
app.include_router(achievements_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
