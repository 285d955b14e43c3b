"""
Session Resolver - Determines who is calling an API route

Two kinds of clients reach the API:
- Browsers, which carry the server-issued session cookie
- The native shell, whose WebView cannot rely on cookies and instead sends
  X-Mobile-Session / X-User-Email / X-User-ID headers

Each credential path is a CredentialExtractor. The resolver asks them in a
fixed priority order and the first one that yields an identity wins. Absence
of credentials is a normal outcome (None), never an exception.
"""
import json
from typing import Mapping, Optional, Sequence
from urllib.parse import unquote

import jwt

from config import Settings
from models import ResolvedSession, SessionSource, SessionUser
from utils.debug import Loggers

MOBILE_SESSION_HEADER = "X-Mobile-Session"
USER_EMAIL_HEADER = "X-User-Email"
USER_ID_HEADER = "X-User-ID"


class CredentialExtractor:
    """One way of turning request headers/cookies into an identity."""

    source: SessionSource

    def extract(self, headers: Mapping[str, str], cookies: Mapping[str, str]) -> Optional[SessionUser]:
        raise NotImplementedError


class PrimarySessionExtractor(CredentialExtractor):
    """Cookie-backed session established by the web sign-in flow."""

    source = SessionSource.PRIMARY_SESSION

    def __init__(self, settings: Settings):
        self.cookie_name = settings.session_cookie_name
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm

    def extract(self, headers, cookies):
        token = cookies.get(self.cookie_name)
        if not token:
            return None

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            Loggers.auth.debug("Primary session cookie expired")
            return None
        except jwt.InvalidTokenError as e:
            Loggers.auth.debug("Primary session cookie rejected", reason=type(e).__name__)
            return None

        return SessionUser.from_payload({
            "id": payload.get("sub"),
            "email": payload.get("email"),
            "name": payload.get("name"),
            "is_admin": payload.get("is_admin", False),
            "roles": payload.get("roles", []),
        })


class MobileHeaderExtractor(CredentialExtractor):
    """
    Serialized session object sent by the native shell.

    The embedded user is only trusted when its email matches X-User-Email
    exactly, so a caller able to forge one header but not the other cannot
    assume another user's identity.
    """

    source = SessionSource.MOBILE_HEADER

    def extract(self, headers, cookies):
        raw_session = headers.get(MOBILE_SESSION_HEADER)
        header_email = headers.get(USER_EMAIL_HEADER)
        if not raw_session or not header_email:
            return None

        session_data = self._parse(raw_session)
        if session_data is None:
            return None

        embedded = session_data.get("user")
        if not isinstance(embedded, dict):
            return None

        if embedded.get("email") != header_email:
            Loggers.auth.warning(
                "Mobile session email does not match header email",
                has_embedded_email=bool(embedded.get("email")),
            )
            return None

        return SessionUser.from_payload(embedded)

    @staticmethod
    def _parse(raw: str) -> Optional[dict]:
        # The shell URL-encodes the JSON; plain JSON is accepted too
        for candidate in (raw, unquote(raw)):
            try:
                data = json.loads(candidate)
            except (ValueError, TypeError):
                continue
            if isinstance(data, dict):
                return data
        Loggers.auth.debug("Ignoring malformed mobile session header", length=len(raw))
        return None


class HeaderFallbackExtractor(CredentialExtractor):
    """Bare email + user id pair; yields a minimal, non-admin identity."""

    source = SessionSource.HEADER_FALLBACK

    def extract(self, headers, cookies):
        email = headers.get(USER_EMAIL_HEADER)
        user_id = headers.get(USER_ID_HEADER)
        if not email or not user_id:
            return None
        return SessionUser(id=user_id, email=email)


class SessionResolver:
    """Runs credential extractors in priority order; first match wins."""

    def __init__(self, extractors: Sequence[CredentialExtractor]):
        self.extractors = list(extractors)

    def resolve(self, headers: Mapping[str, str], cookies: Mapping[str, str]) -> Optional[ResolvedSession]:
        for extractor in self.extractors:
            user = extractor.extract(headers, cookies)
            if user is not None:
                return ResolvedSession(user=user, source=extractor.source)
        return None

    def resolve_request(self, request) -> Optional[ResolvedSession]:
        """Resolve from a Starlette/FastAPI request."""
        return self.resolve(request.headers, request.cookies)


def build_session_resolver(settings: Settings) -> SessionResolver:
    return SessionResolver([
        PrimarySessionExtractor(settings),
        MobileHeaderExtractor(),
        HeaderFallbackExtractor(),
    ])
