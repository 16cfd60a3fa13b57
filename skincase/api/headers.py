"""
skincase.api.headers — Security Header Policy
==============================================

Every response carries a declarative Content-Security-Policy plus the
usual hardening headers.  ``upgrade-insecure-requests`` is only emitted in
production, where the site is served over HTTPS.  No
Cross-Origin-Embedder-Policy is sent: third-party images (Steam CDN,
avatar service) are loaded without CORP headers.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CSP_DIRECTIVES: dict[str, list[str]] = {
    "default-src": ["'self'"],
    "base-uri": ["'self'"],
    "font-src": ["'self'", "https://fonts.gstatic.com", "data:"],
    "form-action": ["'self'"],
    "frame-ancestors": ["'self'"],
    "img-src": [
        "'self'", "data:", "https:", "blob:",
        "https://steamcommunity-a.akamaihd.net", "https://ui-avatars.com",
    ],
    "object-src": ["'none'"],
    "script-src": ["'self'", "'unsafe-inline'", "https://js.stripe.com"],
    "script-src-attr": ["'none'"],
    "style-src": [
        "'self'", "'unsafe-inline'",
        "https://fonts.googleapis.com", "https://fonts.gstatic.com",
    ],
    "connect-src": ["'self'", "https://api.stripe.com", "https://csgoskins.gg"],
    "frame-src": ["'self'", "https://js.stripe.com"],
}

HARDENING_HEADERS: dict[str, str] = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Cross-Origin-Resource-Policy": "cross-origin",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Origin-Agent-Cluster": "?1",
}


def build_csp(production: bool = False) -> str:
    parts = [f"{name} {' '.join(sources)}" for name, sources in CSP_DIRECTIVES.items()]
    if production:
        parts.append("upgrade-insecure-requests")
    return "; ".join(parts)


def security_headers(production: bool = False) -> dict[str, str]:
    return {"Content-Security-Policy": build_csp(production), **HARDENING_HEADERS}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp the security header policy onto every response."""

    def __init__(self, app, production: bool = False) -> None:
        super().__init__(app)
        self.headers = security_headers(production)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers[name] = value
        return response
