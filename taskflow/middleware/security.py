# taskflow/middleware/security.py - Security headers for API responses
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

from taskflow.core.config import settings

API_PREFIX = "/api/"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to every response.
    Board data is per-user, so API responses are never cached.
    """

    def __init__(self, app, enable_hsts: bool = None):
        super().__init__(app)
        self.enable_hsts = settings.ENVIRONMENT == "production" if enable_hsts is None else enable_hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        if request.url.path.startswith(API_PREFIX):
            response.headers["Cache-Control"] = "no-store"

        # HTTPS deployments only
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
