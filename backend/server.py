"""
Comfort Kitchen API Server - FastAPI application with PostgreSQL
"""
from fastapi import FastAPI, APIRouter
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager
import logging
import sys
import httpx
from config import settings
from database.connection import init_db, close_db
from utils.debug import Loggers, get_debug_info, setup_debug_logging, LOGGER_NAMES
from utils.errors import ForbiddenError

# Initialize debug logging early for container log visibility
setup_debug_logging()

# Import middleware
from middleware import (
    SecurityHeadersMiddleware,
    RateLimitMiddleware,
    RequestValidationMiddleware,
    AuditLoggingMiddleware
)

# Import routers
from routers import auth, usage, upc

# Configure root logger to output to stdout/stderr
log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

log_formatter = logging.Formatter(
    '%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

root_logger = logging.getLogger()
root_logger.setLevel(log_level)

# Remove any existing handlers to avoid duplicates
root_logger.handlers = []

# INFO and below to stdout
stdout_handler = logging.StreamHandler(sys.stdout)
stdout_handler.setLevel(logging.DEBUG)
stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
stdout_handler.setFormatter(log_formatter)
root_logger.addHandler(stdout_handler)

# WARNING and above to stderr
stderr_handler = logging.StreamHandler(sys.stderr)
stderr_handler.setLevel(logging.WARNING)
stderr_handler.setFormatter(log_formatter)
root_logger.addHandler(stderr_handler)

for logger_name in LOGGER_NAMES:
    logging.getLogger(logger_name).setLevel(log_level)

logger = logging.getLogger(__name__)


class StartupState:
    """Track server startup state for health check responses"""
    def __init__(self):
        self.is_ready = False
        self.database_ready = False
        self.database_error: str | None = None

    def mark_ready(self):
        self.is_ready = True

    def mark_database_ready(self):
        self.database_ready = True
        self.database_error = None

    def mark_database_failed(self, error: str):
        self.database_error = error


startup_state = StartupState()
logger.info(f"Logging configured with level: {settings.log_level}")
logger.info(f"Debug mode: {settings.debug_mode}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("=" * 60)
    logger.info("COMFORT KITCHEN API STARTING")
    logger.info("=" * 60)
    logger.info(f"Version: {settings.version}")
    logger.info(f"Debug Mode: {settings.debug_mode}")

    app.state.http_client = httpx.AsyncClient(timeout=settings.service_timeout_seconds)
    Loggers.api.info("HTTP client initialized")

    # Database failures leave the server up in a degraded state for health checks
    try:
        Loggers.db.info("Initializing PostgreSQL database connection...")
        await init_db()
        startup_state.mark_database_ready()
    except Exception as e:
        Loggers.db.error(f"Failed to initialize database: {e}", exc_info=True)
        startup_state.mark_database_failed(str(e))

    logger.info("COMFORT KITCHEN API READY")
    startup_state.mark_ready()

    yield

    # Shutdown
    logger.info("COMFORT KITCHEN API SHUTTING DOWN")

    Loggers.api.info("Closing HTTP client...")
    await app.state.http_client.aclose()

    Loggers.db.info("Closing database connections...")
    await close_db()

    logger.info("Shutdown complete")


app = FastAPI(lifespan=lifespan, title="Comfort Kitchen API")

app.add_middleware(GZipMiddleware, minimum_size=500, compresslevel=6)

# CORS - credentials are needed for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origins.split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Security middleware (added in reverse order of execution)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(AuditLoggingMiddleware)
app.add_middleware(RequestValidationMiddleware)
app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.api_rate_limit)

logger.info(f"Security middleware enabled with rate limit: {settings.api_rate_limit} req/min")

# API v1 router - all versioned endpoints
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(auth.router)
api_v1_router.include_router(usage.router)
api_v1_router.include_router(upc.router)

# Legacy /api router for backward compatibility (mirrors v1)
api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(usage.router)
api_router.include_router(upc.router)


# Shared helper functions for endpoints available on both v1 and legacy routers
async def _get_config():
    return {
        "version": settings.version,
        "api_version": "v1",
        "database": "postgresql",
        "session": {
            "cookie_name": settings.session_cookie_name,
            "max_age_hours": settings.session_max_age_hours,
            "mobile_session_hours": settings.mobile_session_hours,
        },
        "features": {
            "mobile_signin": True,
            "usage_tracking": True,
            "upc_lookup": bool(settings.upc_service_urls),
        }
    }


async def _health_check():
    Loggers.api.debug("Health check requested")

    if not startup_state.is_ready:
        status = "starting"
    elif not startup_state.database_ready:
        status = "degraded"
    else:
        status = "healthy"

    response = {
        "status": status,
        "app": "Comfort Kitchen",
        "version": settings.version,
        "api_version": "v1",
        "database": {
            "type": "postgresql",
            "ready": startup_state.database_ready,
        },
        "debug_mode": settings.debug_mode
    }

    if startup_state.database_error:
        response["database"]["error"] = startup_state.database_error

    return response


async def _debug_info():
    if not settings.debug_mode:
        raise ForbiddenError("Debug mode is not enabled")
    Loggers.api.debug("Debug info requested")
    return get_debug_info()


async def _debug_config():
    if not settings.debug_mode:
        raise ForbiddenError("Debug mode is not enabled")
    return settings.get_debug_config()


# API v1 endpoints
@api_v1_router.get("/config")
async def get_config_v1():
    """Get server configuration for clients"""
    return await _get_config()


@api_v1_router.get("/health")
async def health_check_v1():
    """Health check endpoint"""
    return await _health_check()


@api_v1_router.get("/debug/info")
async def debug_info_v1():
    """Get debug information (only available when DEBUG_MODE is enabled)"""
    return await _debug_info()


@api_v1_router.get("/debug/config")
async def debug_config_v1():
    """Get debug configuration (only available when DEBUG_MODE is enabled)"""
    return await _debug_config()


# Legacy /api endpoints (backward compatibility)
@api_router.get("/config")
async def get_config():
    """Get server configuration for clients"""
    return await _get_config()


@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return await _health_check()


@api_router.get("/debug/info")
async def debug_info():
    """Get debug information (only available when DEBUG_MODE is enabled)"""
    return await _debug_info()


@api_router.get("/debug/config")
async def debug_config():
    """Get debug configuration (only available when DEBUG_MODE is enabled)"""
    return await _debug_config()


# Include both API routers
app.include_router(api_v1_router)  # Versioned API (recommended for mobile apps)
app.include_router(api_router)     # Legacy API (backward compatibility)


@app.get("/health")
async def root_health_check():
    """Unprefixed health check for container orchestrators"""
    return await _health_check()
