"""Security response headers middleware.

Adds the conventional set of secure default response headers to every
response. Values a route handler already set are kept as they are;
``X-Powered-By`` is always removed.

The default Content-Security-Policy allows inline styles so the built-in 404
page renders.
"""

from __future__ import annotations

from typing import Mapping, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

DEFAULT_CONTENT_SECURITY_POLICY: str = "; ".join(
    [
        "default-src 'self'",
        "base-uri 'self'",
        "font-src 'self' https: data:",
        "form-action 'self'",
        "frame-ancestors 'self'",
        "img-src 'self' data:",
        "object-src 'none'",
        "script-src 'self'",
        "script-src-attr 'none'",
        "style-src 'self' https: 'unsafe-inline'",
        "upgrade-insecure-requests",
    ]
)

DEFAULT_SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": DEFAULT_CONTENT_SECURITY_POLICY,
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    # "0" turns the legacy browser XSS auditor off.
    "X-XSS-Protection": "0",
}

_REMOVED_HEADERS: tuple[str, ...] = ("x-powered-by",)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Set secure default headers on every response.

    Args:
        headers: Replacement header map. Defaults to DEFAULT_SECURITY_HEADERS.
    """

    def __init__(self, app: ASGIApp, headers: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(app)
        self.headers = dict(DEFAULT_SECURITY_HEADERS if headers is None else headers)

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        for name in _REMOVED_HEADERS:
            if name in response.headers:
                del response.headers[name]
        return response
