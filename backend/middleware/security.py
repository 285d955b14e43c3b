"""
Security Middleware - Security headers, rate limiting, request validation and audit logging
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List

from config import settings
from services.session_resolver import build_session_resolver
from utils.debug import Loggers, log_request, log_response, debug_stats

logger = logging.getLogger(__name__)

HEALTH_PATHS = ["/health", "/api/health", "/api/v1/health"]


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """Same body shape as utils.errors.APIError, for rejections raised before routing."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"error": {"code": code, "message": message, "details": {}}}}
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    The API only serves JSON, so the content security policy denies everything.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"

        # Force HTTPS (only in production)
        if request.url.hostname not in ["localhost", "127.0.0.1", "testserver"]:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Session-bearing responses must never be cached
        response.headers.setdefault("Cache-Control", "no-store")

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client-IP sliding one minute window."""

    def __init__(self, app, requests_per_minute: int = 120):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.request_log: Dict[str, List[datetime]] = {}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in HEALTH_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=1)

        recent = [ts for ts in self.request_log.get(client_ip, []) if ts > cutoff]
        self.request_log[client_ip] = recent

        if len(recent) >= self.requests_per_minute:
            Loggers.security.warning(
                "Rate limit exceeded",
                ip=client_ip,
                path=request.url.path,
                requests_count=len(recent),
                limit=self.requests_per_minute
            )
            return error_response(
                429,
                "RATE_LIMITED",
                f"Rate limit exceeded. Maximum {self.requests_per_minute} requests per minute."
            )

        recent.append(now)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_minute - len(recent)))
        response.headers["X-RateLimit-Reset"] = str(int((now + timedelta(minutes=1)).timestamp()))

        return response


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """
    Reject obviously bad requests before they reach a route.

    Checks for:
    - Excessively large requests
    - Null bytes in the URL
    - Oversized credential headers
    """

    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1MB
    MAX_CREDENTIAL_HEADER_LENGTH = 8 * 1024
    CREDENTIAL_HEADERS = ("x-mobile-session", "x-user-email", "x-user-id")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client_ip = request.client.host if request.client else "unknown"

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.MAX_CONTENT_LENGTH:
            Loggers.security.warning(
                "Request rejected: content too large",
                ip=client_ip,
                content_length=content_length,
                max_length=self.MAX_CONTENT_LENGTH
            )
            return error_response(
                413, "PAYLOAD_TOO_LARGE",
                f"Request too large. Maximum size is {self.MAX_CONTENT_LENGTH} bytes."
            )

        if "\x00" in str(request.url):
            Loggers.security.warning("Request rejected: null byte in URL", ip=client_ip, path=request.url.path)
            return error_response(400, "INVALID_INPUT", "Invalid request")

        for header in self.CREDENTIAL_HEADERS:
            value = request.headers.get(header)
            if value and len(value) > self.MAX_CREDENTIAL_HEADER_LENGTH:
                Loggers.security.warning("Request rejected: oversized credential header", ip=client_ip, header=header)
                return error_response(400, "INVALID_INPUT", "Invalid request")

        return await call_next(request)


class AuditLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log all API requests with the caller's identity and how it was established.

    The identity is resolved from the request only for logging; routes
    resolve and verify it again.
    """

    def __init__(self, app):
        super().__init__(app)
        self.session_resolver = build_session_resolver(settings)

    def _identify(self, request: Request) -> tuple:
        session = self.session_resolver.resolve_request(request)
        if session is None:
            return "anonymous", "none"
        return session.user.id, session.source.value

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        path = request.url.path
        query_params = dict(request.query_params) if request.query_params else None

        user_id, source = self._identify(request)

        if path not in HEALTH_PATHS:
            log_request(method, path, user_id=user_id, query_params=query_params)

        response = await call_next(request)

        response_time = (time.time() - start_time) * 1000

        if path not in HEALTH_PATHS:
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO

            logger.log(
                log_level,
                f"{method} {path} - {response.status_code} - {response_time:.2f}ms - "
                f"user:{user_id[:8]} - source:{source} - ip:{client_ip}"
            )

            log_response(method, path, response.status_code, response_time, user_id=user_id)
            debug_stats.record_request(path, response.status_code, response_time)

        response.headers["X-Response-Time"] = f"{response_time:.2f}ms"

        return response
