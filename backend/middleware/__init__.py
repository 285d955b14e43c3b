"""
Middleware Package - Security headers, rate limiting, validation and audit logging
"""
from .security import (
    SecurityHeadersMiddleware,
    RateLimitMiddleware,
    RequestValidationMiddleware,
    AuditLoggingMiddleware
)

__all__ = [
    "SecurityHeadersMiddleware",
    "RateLimitMiddleware",
    "RequestValidationMiddleware",
    "AuditLoggingMiddleware",
]
