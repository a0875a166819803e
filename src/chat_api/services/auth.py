"""Session resolution for chat requests.

A session is resolved, in order, from:
    1. ``Authorization: Bearer <jwt>`` header
    2. The session cookie (AUTH_COOKIE_NAME)
    3. ``x-user-id`` / ``x-user-email`` headers, only when
       AUTH_TRUST_GATEWAY_HEADERS is enabled (an authenticating gateway
       sits in front of the service)

Tokens are HS256 JWTs signed with AUTH_SECRET; the user id is taken from
the ``sub`` claim, falling back to ``user_id``. Any failure resolves to
no session; the routes decide how to answer.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request

from chat_api.config import ServiceSettings, get_settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str | None = None


@dataclass(frozen=True)
class AuthSession:
    user: SessionUser | None


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_session_token(token: str, settings: ServiceSettings) -> AuthSession | None:
    """Verify a session JWT and build the session from its claims."""
    if not settings.auth_secret:
        logger.warning("auth.secret_missing")
        return None
    try:
        payload = jwt.decode(
            token,
            settings.auth_secret,
            algorithms=[settings.auth_algorithm],
            options={"require": ["exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("auth.token_expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.info("auth.token_invalid", error=str(e))
        return None

    user_id = payload.get("sub") or payload.get("user_id")
    if not user_id:
        return AuthSession(user=None)
    return AuthSession(user=SessionUser(id=str(user_id), email=payload.get("email")))


def resolve_session(request: Request, settings: ServiceSettings) -> AuthSession | None:
    token = _bearer_token(request) or request.cookies.get(settings.auth_cookie_name)
    if token:
        return decode_session_token(token, settings)

    if settings.auth_trust_gateway_headers:
        user_id = request.headers.get("x-user-id")
        if user_id:
            return AuthSession(
                user=SessionUser(id=user_id, email=request.headers.get("x-user-email"))
            )
    return None


async def auth(
    request: Request,
    settings: ServiceSettings = Depends(get_settings),
) -> Optional[AuthSession]:
    """FastAPI dependency: the caller's session, or None when unauthenticated."""
    return resolve_session(request, settings)


def session_user_id(session: Optional[AuthSession]) -> str | None:
    """User id of a usable session, None for missing or incomplete sessions."""
    if session is None or session.user is None or not session.user.id:
        return None
    return session.user.id
