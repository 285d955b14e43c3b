"""
Authentication Router - Registration, web and mobile sign-in, session introspection
"""
from fastapi import APIRouter, Depends, Request, Response
from models import (
    UserCreate, UserLogin, SessionUserResponse, SessionResponse,
    MobileSignInResponse, CurrentSessionResponse, ResolvedSession,
)
from config import settings
from dependencies import (
    require_session, hash_password, verify_password, create_session_token,
    refresh_user_state, user_repository,
)
from services.subscription import get_effective_tier
from services.usage_tracker import new_usage_tracking, usage_snapshot
from utils.debug import Loggers, log_auth_event, mask_email
from utils.errors import (
    AlreadyExistsError, EmailNotVerifiedError, ForbiddenError,
    InvalidCredentialsError, handle_database_error,
)
import uuid
import asyncio
import logging
from datetime import datetime, timezone, timedelta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

MOBILE_APP_HEADER = "X-Mobile-App"
NATIVE_USER_AGENT_MARKERS = ("CapacitorHttp", "DocBear")


def is_native_client(request: Request) -> bool:
    """Mobile sign-in is only offered to the native shell."""
    if request.headers.get(MOBILE_APP_HEADER) == settings.mobile_app_id:
        return True
    user_agent = request.headers.get("User-Agent", "")
    return any(marker in user_agent for marker in NATIVE_USER_AGENT_MARKERS)


def build_session(user: dict, hours: int) -> SessionResponse:
    expires = datetime.now(timezone.utc) + timedelta(hours=hours)
    return SessionResponse(
        user=SessionUserResponse(
            id=user["id"],
            email=user["email"],
            name=user.get("name") or "",
            email_verified=bool(user.get("email_verified")),
            is_admin=bool(user.get("is_admin")),
            roles=user.get("roles") or [],
            subscription_tier=user.get("subscription_tier") or "free",
            subscription_status=user.get("subscription_status") or "free",
            effective_tier=get_effective_tier(user),
            created_at=user.get("created_at"),
            usage=usage_snapshot(user),
        ),
        expires=expires.isoformat(),
    )


def set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age_hours * 3600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


async def authenticate(credentials: UserLogin, source: str) -> dict:
    """
    Verify email and password and bring the account up to date.

    Raises InvalidCredentialsError for unknown users and bad passwords alike.
    """
    try:
        db_user = await user_repository.find_by_email(credentials.email, include_password=True)
    except Exception as e:
        handle_database_error(e, "find user for sign-in")

    if not db_user or not db_user.get("password"):
        log_auth_event("SIGNIN", email=credentials.email, source=source, success=False, reason="user_not_found")
        raise InvalidCredentialsError()

    # Verify password in a thread pool
    is_valid = await asyncio.get_running_loop().run_in_executor(
        None, verify_password, credentials.password, db_user["password"]
    )
    if not is_valid:
        log_auth_event("SIGNIN", user_id=db_user["id"], source=source, success=False, reason="bad_password")
        raise InvalidCredentialsError()

    db_user.pop("password", None)
    await refresh_user_state(db_user)

    # Use naive UTC datetime for PostgreSQL TIMESTAMP columns
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    try:
        await user_repository.update_user(db_user["id"], {"last_login": now})
    except Exception as e:
        handle_database_error(e, "record last login")
    db_user["last_login"] = now

    return db_user


@router.post("/register", response_model=SessionResponse, status_code=201)
async def register(user: UserCreate, response: Response):
    Loggers.auth.info("Registration attempt", email=mask_email(user.email))

    try:
        existing = await user_repository.find_by_email(user.email)
    except Exception as e:
        handle_database_error(e, "check existing email")
    if existing:
        log_auth_event("REGISTER", email=user.email, success=False, reason="email_taken")
        raise AlreadyExistsError("User", "email", user.email)

    # Hash password in a thread pool
    hashed_password = await asyncio.get_running_loop().run_in_executor(
        None, hash_password, user.password
    )

    now = datetime.now(timezone.utc)
    user_doc = {
        "id": str(uuid.uuid4()),
        "email": user.email,
        "password": hashed_password,
        "name": user.name,
        "is_admin": False,
        "roles": [],
        "email_verified": False,
        "subscription_tier": "free",
        "subscription_status": "free",
        "usage_tracking": new_usage_tracking(now),
        "created_at": now.replace(tzinfo=None),
        "last_login": now.replace(tzinfo=None),
    }
    try:
        await user_repository.create(dict(user_doc))
    except Exception as e:
        handle_database_error(e, "create user")
    user_doc.pop("password")

    log_auth_event("REGISTER", user_id=user_doc["id"], email=user.email)

    token = create_session_token(user_doc, settings.session_max_age_hours)
    set_session_cookie(response, token)
    return build_session(user_doc, settings.session_max_age_hours)


@router.post("/signin", response_model=SessionResponse)
async def signin(credentials: UserLogin, response: Response):
    db_user = await authenticate(credentials, source="web")

    token = create_session_token(db_user, settings.session_max_age_hours)
    set_session_cookie(response, token)

    log_auth_event("SIGNIN", user_id=db_user["id"], source="web")
    return build_session(db_user, settings.session_max_age_hours)


@router.post("/mobile-signin", response_model=MobileSignInResponse)
async def mobile_signin(credentials: UserLogin, request: Request):
    """
    Credentials sign-in for the native shell.

    Returns the session object the shell stores and replays in the
    X-Mobile-Session header, along with a signed token.
    """
    if not is_native_client(request):
        log_auth_event("MOBILE_SIGNIN", email=credentials.email, success=False, reason="not_native_client")
        raise ForbiddenError("Mobile sign-in is only available from the mobile app")

    db_user = await authenticate(credentials, source="mobile")

    if not db_user.get("email_verified"):
        log_auth_event("MOBILE_SIGNIN", user_id=db_user["id"], success=False, reason="email_not_verified")
        raise EmailNotVerifiedError()

    token = create_session_token(db_user, settings.mobile_session_hours)

    log_auth_event("MOBILE_SIGNIN", user_id=db_user["id"], source="mobile")
    return MobileSignInResponse(
        session=build_session(db_user, settings.mobile_session_hours),
        token=token,
    )


@router.post("/signout")
async def signout(response: Response):
    response.delete_cookie(settings.session_cookie_name)
    return {"message": "Signed out"}


@router.get("/session", response_model=CurrentSessionResponse)
async def get_current_session(session: ResolvedSession = Depends(require_session)):
    return CurrentSessionResponse(user=session.user, source=session.source)
