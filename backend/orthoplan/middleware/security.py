"""Security middleware: response hardening headers and HTTPS enforcement."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from orthoplan.config import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Patient data must never land in shared caches
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"

        return response


class HTTPSRedirectMiddleware(BaseHTTPMiddleware):
    """Redirect HTTP requests to HTTPS (production only)."""

    def __init__(self, app, force_https: bool = False):
        super().__init__(app)
        self.force_https = force_https or settings.environment == "production"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.force_https:
            return await call_next(request)

        # Behind a TLS-terminating proxy the original scheme is forwarded
        scheme = request.headers.get("x-forwarded-proto", request.url.scheme)
        if scheme == "http":
            return RedirectResponse(
                url=str(request.url.replace(scheme="https")),
                status_code=301,
            )

        return await call_next(request)
