"""
Dependencies module for FastAPI application
Provides session resolution, the current user with usage bookkeeping, and
password / session token helpers
"""
from fastapi import Depends, Request
from config import settings
import jwt
import bcrypt
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

from database.repositories.user_repository import user_repository
from models import ResolvedSession
from services.session_resolver import build_session_resolver
from services.subscription import check_and_expire_trial
from services.upc_lookup import UPCLookupClient
from services.usage_tracker import check_and_reset_monthly_usage
from utils.debug import DebugContext, Loggers, log_auth_event
from utils.errors import UnauthorizedError, handle_database_error

logger = logging.getLogger(__name__)

session_resolver = build_session_resolver(settings)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_session_token(user: dict, hours: int) -> str:
    """Signed session token carried by the primary session cookie."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user["id"],
        "email": user["email"],
        "name": user.get("name"),
        "is_admin": bool(user.get("is_admin")),
        "roles": user.get("roles") or [],
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_session(request: Request) -> Optional[ResolvedSession]:
    """Resolved identity for the request, or None when unauthenticated."""
    session = session_resolver.resolve_request(request)
    if session is None:
        Loggers.auth.debug("No session resolved", path=request.url.path)
    elif settings.debug_log_auth:
        log_auth_event("SESSION", user_id=session.user.id, source=session.source.value)
    return session


async def require_session(session: Optional[ResolvedSession] = Depends(get_session)) -> ResolvedSession:
    if session is None:
        raise UnauthorizedError()
    return session


async def refresh_user_state(user: dict) -> dict:
    """
    Expire a lapsed trial and reset stale monthly counters, then persist.

    Returns the persisted changes; empty when the record was already current.
    """
    changes = {}
    if check_and_expire_trial(user):
        changes["subscription_status"] = user["subscription_status"]
        changes["subscription_tier"] = user["subscription_tier"]
    if check_and_reset_monthly_usage(user):
        changes["usage_tracking"] = user["usage_tracking"]

    if changes:
        try:
            await user_repository.update_user(user["id"], changes)
        except Exception as e:
            handle_database_error(e, "refresh user state")
    return changes


async def persist_usage(user: dict):
    try:
        async with DebugContext("persist_usage", logger=Loggers.usage, user_id=user["id"]):
            await user_repository.save_usage_tracking(user["id"], user["usage_tracking"])
    except Exception as e:
        handle_database_error(e, "save usage tracking")


async def get_current_user(session: ResolvedSession = Depends(require_session)) -> dict:
    """
    Load the user behind the resolved session and bring its usage up to date.

    The stored email must match the session email; a header-supplied user id
    pointing at someone else's record is rejected.
    """
    try:
        user = await user_repository.find_by_id(session.user.id)
    except Exception as e:
        handle_database_error(e, "load current user")

    if not user:
        log_auth_event("SESSION", user_id=session.user.id, source=session.source.value,
                       success=False, reason="user_not_found")
        raise UnauthorizedError()

    if user.get("email") != session.user.email:
        log_auth_event("SESSION", user_id=session.user.id, source=session.source.value,
                       success=False, reason="email_mismatch")
        raise UnauthorizedError()

    changes = await refresh_user_state(user)
    user["usage_was_reset"] = "usage_tracking" in changes
    user["session_source"] = session.source.value
    return user


def get_upc_client(request: Request) -> UPCLookupClient:
    return UPCLookupClient(request.app.state.http_client, settings.service_config())


__all__ = [
    'get_session',
    'require_session',
    'get_current_user',
    'refresh_user_state',
    'persist_usage',
    'get_upc_client',
    'hash_password',
    'verify_password',
    'create_session_token',
    'session_resolver',
    'user_repository',
]
