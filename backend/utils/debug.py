"""
Debug Utilities - Structured logging helpers for the Comfort Kitchen API

Provides:
- Pre-configured `comfort.*` loggers with key=value context
- Context manager for timing code blocks
- Request/response, database query and auth event logging

All logs are output to stdout for container log visibility.

Environment Variables:
    DEBUG_MODE=true           - Include request bodies and query params in logs
    DEBUG_LOG_REQUESTS=false  - Skip per-request logs
    DEBUG_LOG_DB_QUERIES=true - Log every database query, not only failed or slow ones
    LOG_LEVEL=DEBUG           - Set log level (DEBUG, INFO, WARNING, ERROR)

Usage:
    from utils.debug import Loggers, DebugContext, log_auth_event

    Loggers.auth.info("Session resolved", source="mobile-header")

    with DebugContext("usage_reset", user_id="123"):
        ...
"""

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import settings

DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGER_NAMES = [
    'comfort', 'comfort.debug', 'comfort.auth', 'comfort.db', 'comfort.api',
    'comfort.usage', 'comfort.security', 'comfort.services', 'comfort.context',
]


def setup_debug_logging():
    """
    Configure the comfort.* loggers with a stdout handler.

    Call this early in application startup.
    """
    level = getattr(logging, LOG_LEVEL, logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    for logger_name in LOGGER_NAMES:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        logger.handlers = []

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler.setLevel(level)
        logger.addHandler(handler)

        # Prevent propagation to avoid duplicate logs
        logger.propagate = False

    logging.getLogger("comfort.debug").info(
        f"Debug logging configured: level={LOG_LEVEL}, debug_mode={DEBUG_MODE}"
    )


def _format_value(value: Any, max_length: int = 200) -> str:
    """Format a value for log output, truncating if necessary."""
    try:
        if value is None:
            return "None"
        if isinstance(value, (str, int, float, bool)):
            str_val = str(value)
        elif isinstance(value, (dict, list)):
            str_val = json.dumps(value, default=str)
        else:
            str_val = repr(value)

        if len(str_val) > max_length:
            return str_val[:max_length] + "..."
        return str_val
    except Exception:
        return "<unserializable>"


def mask_email(email: Optional[str]) -> str:
    """Mask an email address for logs: jane@example.com -> ja***@example.com"""
    if not email:
        return "***"
    if "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return local[:2] + "***@" + domain


class DebugLogger:
    """
    Logger with key=value context formatting.

    Usage:
        logger = DebugLogger("usage")
        logger.info("Monthly usage reset", user_id=123, month=6)
    """

    def __init__(self, module: str):
        self.module = module
        self.logger = logging.getLogger(f"comfort.{module}")

    def _format_message(self, message: str, **kwargs) -> str:
        if kwargs:
            context_str = " | ".join(f"{k}={_format_value(v)}" for k, v in kwargs.items())
            return f"[{self.module}] {message} | {context_str}"
        return f"[{self.module}] {message}"

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs):
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs):
        self.logger.error(self._format_message(message, **kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs):
        self.logger.exception(self._format_message(message, **kwargs))


class Loggers:
    """Pre-configured loggers for different application modules."""
    auth = DebugLogger("auth")
    db = DebugLogger("db")
    api = DebugLogger("api")
    usage = DebugLogger("usage")
    security = DebugLogger("security")
    services = DebugLogger("services")


class DebugContext:
    """
    Context manager for timing a block of code and logging failures.

    Usage:
        with DebugContext("persist_usage", user_id="123"):
            await user_repository.save_usage_tracking(...)

        async with DebugContext("upc_lookup", upc="0123"):
            ...
    """

    def __init__(self, name: str, logger: Optional[DebugLogger] = None, **context):
        self.name = name
        self.logger = logger or DebugLogger("context")
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        self.logger.debug(f"BEGIN {self.name}", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = (time.time() - self.start_time) * 1000

        if exc_type:
            self.logger.error(
                f"FAILED {self.name}: {exc_type.__name__}: {str(exc_val)}",
                duration_ms=f"{elapsed:.2f}",
                **self.context
            )
        elif elapsed > 1000:
            self.logger.warning(
                f"END {self.name}",
                duration_ms=f"{elapsed:.2f}",
                status="SLOW",
                **self.context
            )
        else:
            self.logger.debug(f"END {self.name}", duration_ms=f"{elapsed:.2f}", **self.context)

        return False

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)


def log_request(method: str, path: str, user_id: Optional[str] = None,
                query_params: Optional[Dict] = None):
    """Log an incoming API request."""
    if not settings.debug_log_requests:
        return

    context = {"method": method, "path": path}
    if user_id:
        context["user_id"] = user_id
    if query_params and DEBUG_MODE:
        context["query"] = _format_value(query_params)

    Loggers.api.debug("REQUEST", **context)


def log_response(method: str, path: str, status_code: int,
                 duration_ms: float, user_id: Optional[str] = None):
    """Log an API response; 4xx as warnings, 5xx as errors."""
    context = {
        "method": method,
        "path": path,
        "status": status_code,
        "duration_ms": f"{duration_ms:.2f}",
    }
    if user_id:
        context["user_id"] = user_id

    if status_code >= 500:
        Loggers.api.error("RESPONSE", **context)
    elif status_code >= 400:
        Loggers.api.warning("RESPONSE", **context)
    elif duration_ms > 1000:
        Loggers.api.warning("RESPONSE (SLOW)", **context)
    else:
        Loggers.api.debug("RESPONSE", **context)


def log_db_query(operation: str, table: str, duration_ms: float,
                 rows_affected: Optional[int] = None,
                 query_params: Optional[Dict] = None,
                 error: Optional[str] = None):
    """
    Log a database query.

    Usage:
        log_db_query("SELECT", "users", 5.2, rows_affected=1, query_params={"id": "123"})
    """
    context = {
        "operation": operation,
        "table": table,
        "duration_ms": f"{duration_ms:.2f}",
    }
    if rows_affected is not None:
        context["rows"] = rows_affected
    if query_params and DEBUG_MODE:
        context["params"] = _format_value(query_params)

    if error:
        context["error"] = error
        Loggers.db.error("QUERY FAILED", **context)
    elif duration_ms > 100:
        Loggers.db.warning("QUERY (SLOW)", **context)
    elif settings.debug_log_db_queries:
        Loggers.db.debug("QUERY", **context)


def log_auth_event(event: str, user_id: Optional[str] = None,
                   email: Optional[str] = None, source: Optional[str] = None,
                   success: bool = True, reason: Optional[str] = None):
    """
    Log an authentication event. Emails are masked.

    Usage:
        log_auth_event("SIGNIN", email="user@example.com", success=True)
        log_auth_event("SESSION", user_id="1", source="mobile-header")
    """
    context = {"event": event, "success": success}
    if user_id:
        context["user_id"] = user_id
    if email:
        context["email"] = mask_email(email)
    if source:
        context["source"] = source
    if reason:
        context["reason"] = reason

    if success:
        Loggers.auth.info("AUTH", **context)
    else:
        Loggers.auth.warning("AUTH", **context)


class DebugStats:
    """Rolling request statistics reported by the debug endpoint."""

    def __init__(self):
        self.requests: List[Dict] = []
        self._start_time = time.time()

    def record_request(self, path: str, status: int, duration_ms: float):
        self.requests.append({
            "path": path,
            "status": status,
            "duration_ms": duration_ms,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })
        if len(self.requests) > 1000:
            self.requests = self.requests[-1000:]

    def get_summary(self) -> Dict:
        total = len(self.requests)
        if total:
            avg_duration = sum(r["duration_ms"] for r in self.requests) / total
            error_count = sum(1 for r in self.requests if r["status"] >= 400)
        else:
            avg_duration = 0
            error_count = 0

        return {
            "uptime_seconds": time.time() - self._start_time,
            "debug_mode": DEBUG_MODE,
            "requests": {
                "total": total,
                "avg_duration_ms": round(avg_duration, 2),
                "error_count": error_count,
            },
        }

    def clear(self):
        self.requests.clear()


debug_stats = DebugStats()


def get_debug_info() -> Dict:
    """Environment and statistics summary for the debug endpoint."""
    import platform

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": {
            "python_version": sys.version,
            "platform": platform.platform(),
            "debug_mode": DEBUG_MODE,
        },
        "stats": debug_stats.get_summary()
    }
