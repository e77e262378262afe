"""
Security middleware: CSRF protection and security headers.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.auth import CSRF_COOKIE, SESSION_COOKIE

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

# Public password reset endpoints; they never read the session.
CSRF_EXEMPT_PREFIXES = ("/auth/",)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Double-submit cookie CSRF protection for cookie-authenticated writes.

    Skipped for safe methods, the public /auth/ endpoints, bearer-authenticated
    requests and requests without a session cookie.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in SAFE_METHODS:
            return await call_next(request)

        if request.url.path.startswith(CSRF_EXEMPT_PREFIXES):
            return await call_next(request)

        if request.headers.get("Authorization"):
            return await call_next(request)

        if SESSION_COOKIE not in request.cookies:
            return await call_next(request)

        cookie_token = request.cookies.get(CSRF_COOKIE)
        header_token = request.headers.get("X-CSRF-Token")

        if not cookie_token or not header_token or cookie_token != header_token:
            return JSONResponse(
                status_code=403,
                content={
                    "error": "Invalid or missing CSRF token.",
                    "code": "CSRF_VALIDATION_FAILED",
                },
            )

        return await call_next(request)
