"""
skincase.api.security_log — Suspicious Request Logging
=======================================================

Logs, once the response is ready:

- 401 / 403 / 429 responses at WARNING
- 5xx responses at ERROR
- every ``/api/admin`` request at INFO

with method, path, client ip, user agent, status, duration and user id.
"""

from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from skincase.api.deps import client_ip

logger = logging.getLogger(__name__)

_SUSPICIOUS = frozenset({401, 403, 429})


class SecurityLogMiddleware(BaseHTTPMiddleware):
    """Proxy trust comes from ``app.state.trust_proxy``, set at startup."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        state = request.state   # shared with downstream handlers via the scope
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        status = response.status_code
        admin = request.url.path.startswith("/api/admin")
        if status not in _SUSPICIOUS and status < 500 and not admin:
            return response

        fields = (
            request.method,
            request.url.path,
            client_ip(request, getattr(request.app.state, "trust_proxy", False)),
            request.headers.get("user-agent", "-"),
            status,
            duration_ms,
            getattr(state, "user_id", None) or "anonymous",
        )
        fmt = "%s %s ip=%s ua=%r status=%d %.1fms user=%s"
        if status >= 500:
            logger.error("Server error: " + fmt, *fields)
        elif status in _SUSPICIOUS:
            logger.warning("Suspicious request: " + fmt, *fields)
        if admin:
            logger.info("Admin action: " + fmt, *fields)
        return response
