"""
skincase.api.rate_limit — Per-IP Fixed-Window Rate Limiting
============================================================

Four named policies, each counting requests per client IP in a fixed
window that opens on the key's first hit:

===========  ========  ============  =====================================
Policy       Window    Max requests  Notes
===========  ========  ============  =====================================
general      15 min    1000          every API request
auth         15 min    10            login/register; successes not counted
expensive    5 min     20            purchases and claims
api          1 min     100           machine-reported mission metrics
===========  ========  ============  =====================================

Once the count exceeds the maximum the request is rejected with HTTP 429,
``{"error", "message", "retryAfter"}`` and a ``Retry-After`` header
carrying the seconds left in the window.  ``config.yaml`` can override
window and maximum per policy.

Counters live in a :class:`CounterStore`: :class:`MemoryCounterStore` for
a single process, :class:`DatabaseCounterStore` (``rate_limit_counters``)
when several workers share the limits.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol

from fastapi import Request
from sqlalchemy import Engine, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skincase.api.deps import client_ip
from skincase.database.engine import run_db
from skincase.database.models import RateLimitCounter, as_utc
from skincase.errors import RateLimited

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    name: str
    window_seconds: int
    max_requests: int
    error: str
    message: str
    skip_successful_requests: bool = False


POLICIES: dict[str, RateLimitPolicy] = {
    "general": RateLimitPolicy(
        name="general",
        window_seconds=15 * 60,
        max_requests=1000,
        error="too_many_requests",
        message="You have exceeded the request limit. Please try again in 15 minutes.",
    ),
    "auth": RateLimitPolicy(
        name="auth",
        window_seconds=15 * 60,
        max_requests=10,
        error="too_many_login_attempts",
        message="You have exceeded the login attempt limit. Please try again in 15 minutes.",
        skip_successful_requests=True,
    ),
    "expensive": RateLimitPolicy(
        name="expensive",
        window_seconds=5 * 60,
        max_requests=20,
        error="action_limit_exceeded",
        message="You have exceeded the action limit. Please try again in 5 minutes.",
    ),
    "api": RateLimitPolicy(
        name="api",
        window_seconds=60,
        max_requests=100,
        error="api_limit_exceeded",
        message="You have exceeded the API request limit. Please try again in 1 minute.",
    ),
}


def resolve_policies(
    overrides: Mapping[str, tuple[int, int]] | None = None,
) -> dict[str, RateLimitPolicy]:
    """Apply ``{policy: (window_seconds, max_requests)}`` overrides."""
    policies = dict(POLICIES)
    for name, (window, maximum) in (overrides or {}).items():
        if name not in policies:
            raise ValueError(f"Unknown rate limit policy: {name!r}")
        if window <= 0 or maximum <= 0:
            raise ValueError(f"rate_limits.{name} must be positive")
        policies[name] = replace(policies[name], window_seconds=window, max_requests=maximum)
    return policies


# ---------------------------------------------------------------------------
# Counter stores
# ---------------------------------------------------------------------------
class CounterStore(Protocol):
    def increment(self, key: str, window_seconds: int) -> tuple[int, datetime]:
        """Count one hit; return (hits in current window, window reset time)."""
        ...

    def decrement(self, key: str) -> None:
        ...

    def reset(self, key: str | None = None) -> None:
        ...


class MemoryCounterStore:
    """In-process counters.  Expired windows are dropped on next touch."""

    def __init__(self, clock: Clock = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: dict[str, list] = {}   # key → [hits, reset_at]

    def increment(self, key: str, window_seconds: int) -> tuple[int, datetime]:
        with self._lock:
            now = self._clock()
            entry = self._counters.get(key)
            if entry is None or entry[1] <= now:
                entry = [0, now + timedelta(seconds=window_seconds)]
                self._counters[key] = entry
            entry[0] += 1
            return entry[0], entry[1]

    def decrement(self, key: str) -> None:
        with self._lock:
            entry = self._counters.get(key)
            if entry is not None and entry[0] > 0:
                entry[0] -= 1

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._counters.clear()
            else:
                self._counters.pop(key, None)


class DatabaseCounterStore:
    """Counters in ``rate_limit_counters``, shared by every worker.

    Each hit is one conditional ``UPDATE hits = hits + 1`` on a live
    window; an expired window is restarted in place and a missing key is
    inserted, retrying if a concurrent request inserted it first.
    """

    def __init__(self, engine: Engine, clock: Clock = _utcnow) -> None:
        self.engine = engine
        self._clock = clock

    def increment(self, key: str, window_seconds: int) -> tuple[int, datetime]:
        while True:
            now = self._clock()
            with Session(self.engine) as session:
                bumped = session.execute(
                    update(RateLimitCounter)
                    .where(RateLimitCounter.key == key, RateLimitCounter.reset_at > now)
                    .values(hits=RateLimitCounter.hits + 1)
                ).rowcount
                if bumped:
                    row = session.execute(
                        select(RateLimitCounter.hits, RateLimitCounter.reset_at)
                        .where(RateLimitCounter.key == key)
                    ).one()
                    session.commit()
                    return row.hits, as_utc(row.reset_at)

                reset_at = now + timedelta(seconds=window_seconds)
                restarted = session.execute(
                    update(RateLimitCounter)
                    .where(RateLimitCounter.key == key, RateLimitCounter.reset_at <= now)
                    .values(hits=1, reset_at=reset_at)
                ).rowcount
                if restarted:
                    session.commit()
                    return 1, reset_at

                session.add(RateLimitCounter(key=key, hits=1, reset_at=reset_at))
                try:
                    session.commit()
                    return 1, reset_at
                except IntegrityError:
                    session.rollback()

    def decrement(self, key: str) -> None:
        with Session(self.engine) as session:
            session.execute(
                update(RateLimitCounter)
                .where(RateLimitCounter.key == key, RateLimitCounter.hits > 0)
                .values(hits=RateLimitCounter.hits - 1)
            )
            session.commit()

    def reset(self, key: str | None = None) -> None:
        with Session(self.engine) as session:
            if key is None:
                session.execute(delete(RateLimitCounter))
            else:
                session.execute(delete(RateLimitCounter).where(RateLimitCounter.key == key))
            session.commit()

    def purge_expired(self) -> int:
        """Delete counters whose window has closed.  Returns rows removed."""
        with Session(self.engine) as session:
            removed = session.execute(
                delete(RateLimitCounter).where(RateLimitCounter.reset_at <= self._clock())
            ).rowcount
            session.commit()
        return removed


# ---------------------------------------------------------------------------
# Limiter
# ---------------------------------------------------------------------------
class RateLimiter:
    """Applies the named policies to a :class:`CounterStore`."""

    def __init__(
        self,
        store: CounterStore,
        policies: Mapping[str, RateLimitPolicy] | None = None,
        *,
        trust_proxy: bool = False,
        clock: Clock = _utcnow,
    ) -> None:
        self.store = store
        self.policies = dict(policies or POLICIES)
        self.trust_proxy = trust_proxy
        self._clock = clock

    def policy(self, name: str) -> RateLimitPolicy:
        try:
            return self.policies[name]
        except KeyError:
            raise ValueError(f"Unknown rate limit policy: {name!r}") from None

    def hit(self, policy_name: str, client: str) -> int:
        """Count a request.  Raises :class:`RateLimited` once over the limit."""
        policy = self.policy(policy_name)
        hits, reset_at = self.store.increment(f"{policy.name}:{client}", policy.window_seconds)
        if hits > policy.max_requests:
            reset_in = max(1, math.ceil((reset_at - self._clock()).total_seconds()))
            logger.warning(
                "Rate limit '%s' exceeded by %s: %d/%d in %ds window",
                policy.name, client, hits, policy.max_requests, policy.window_seconds,
            )
            raise RateLimited(
                policy.message,
                retry_after=policy.window_seconds,
                reset_in=reset_in,
                code=policy.error,
            )
        return hits

    def release(self, policy_name: str, client: str) -> None:
        """Un-count a request (successful requests under skip policies)."""
        self.store.decrement(f"{self.policy(policy_name).name}:{client}")

    def reset(self, policy_name: str | None = None, client: str | None = None) -> None:
        """Clear one client's counter, or everything."""
        if policy_name is None or client is None:
            self.store.reset()
        else:
            self.store.reset(f"{policy_name}:{client}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Return the global rate limiter instance."""
    if _limiter is None:
        raise RuntimeError("Rate limiter not configured — call configure_rate_limiter() first")
    return _limiter


def configure_rate_limiter(
    *,
    store: CounterStore,
    overrides: Mapping[str, tuple[int, int]] | None = None,
    trust_proxy: bool = False,
) -> RateLimiter:
    """Install the global limiter over *store*."""
    global _limiter
    _limiter = RateLimiter(store, resolve_policies(overrides), trust_proxy=trust_proxy)
    return _limiter


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------
def rate_limiter(policy_name: str):
    """Dependency enforcing *policy_name* for the caller's IP.

    For policies with ``skip_successful_requests`` the hit is released
    again when the handler finishes without raising, so only failures
    accumulate.

    Use ``Depends(rate_limiter("auth"))`` on a route or router.
    """
    if policy_name not in POLICIES:
        raise ValueError(f"Unknown rate limit policy: {policy_name!r}")

    async def dependency(request: Request):
        limiter = get_rate_limiter()
        client = client_ip(request, limiter.trust_proxy)
        await run_db(limiter.hit, policy_name, client)
        # Handler errors are re-raised at the yield, skipping the release
        yield
        if limiter.policy(policy_name).skip_successful_requests:
            await run_db(limiter.release, policy_name, client)

    return dependency
