"""Security middleware for the API."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from . import settings

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Implements OWASP recommended security headers to protect against
    common web vulnerabilities.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "geolocation=(), microphone=(), camera=(), usb=(), "
            "magnetometer=(), gyroscope=(), accelerometer=()"
        )

        # HSTS only over HTTPS or in production
        if settings.ENVIRONMENT == "production" or request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Uploaded PDFs are embedded by the frontend, so framing is allowed for /uploads
        if request.url.path.startswith("/uploads/"):
            response.headers["X-Frame-Options"] = "SAMEORIGIN"
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'self'"
        else:
            response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none'; base-uri 'self'"

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log failing requests (5xx at error, 4xx at debug)."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        if response.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {response.status_code}")
        elif response.status_code >= 400:
            logger.debug(f"{request.method} {request.url.path} -> {response.status_code}")
        return response
