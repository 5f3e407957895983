"""JWT authentication for FastAPI, plus the n8n shared-secret check."""

import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt as pyjwt
from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select

from promptverse.core.config import get_settings
from promptverse.core.exceptions import ValidationError
from promptverse.domain.ids import normalize_id

_bearer_scheme = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"
WEBHOOK_TOKEN_TTL_SECONDS = 300

SESSION_COOKIE = "token"

# In-memory cache of user IDs known to exist, to avoid DB queries on every request
_known_user_cache: set[str] = set()


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user extracted from a session JWT."""

    user_id: str
    claims: dict

    @property
    def email(self) -> str | None:
        return self.claims.get("email")


def _jwt_secret() -> str:
    secret = get_settings().jwt_secret
    if not secret:
        raise HTTPException(status_code=500, detail="Authentication is misconfigured")
    return secret


def create_access_token(user_id: str, email: str | None = None, expires_days: int | None = None) -> str:
    """Issue a session JWT for ``user_id``."""
    settings = get_settings()
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(days=expires_days or settings.jwt_expire_days),
    }
    if email:
        payload["email"] = email
    return pyjwt.encode(payload, _jwt_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> AuthUser:
    """Verify and decode a session JWT.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    try:
        payload = pyjwt.decode(
            token,
            _jwt_secret(),
            algorithms=[ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    try:
        user_id = normalize_id(payload.get("sub"), "sub")
    except ValidationError:
        user_id = None
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has an invalid sub claim")

    return AuthUser(user_id=user_id, claims=payload)


async def _user_exists(user_id: str) -> bool:
    from promptverse.db.base import get_session_factory
    from promptverse.db.models.user import User

    async with get_session_factory()() as session:
        result = await session.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser:
    """FastAPI dependency that extracts and validates the session JWT.

    Accepts ``Authorization: Bearer <token>`` or the ``token`` cookie. The
    token subject must be an existing User; otherwise the request is a 401.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    token = credentials.credentials if credentials is not None else request.cookies.get(SESSION_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    user = decode_access_token(token)

    if user.user_id not in _known_user_cache:
        if not await _user_exists(user.user_id):
            raise HTTPException(status_code=401, detail="User not found")
        _known_user_cache.add(user.user_id)

    # Set user_id on request state for downstream use (error handlers, audit logging)
    request.state.user_id = user.user_id

    return user


async def require_n8n_key(x_api_key: str | None = Header(default=None)) -> None:
    """FastAPI dependency guarding the workflow-engine callback routes.

    Compares the ``x-api-key`` header with the configured shared secret. An
    unset secret rejects every call.
    """
    expected = get_settings().n8n_api_key
    if not expected or not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_webhook_token(user: AuthUser) -> str:
    """Short-lived token the frontend hands to n8n when it calls back on a user's behalf."""
    secret = get_settings().n8n_webhook_secret
    if not secret:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    now = datetime.now(UTC)
    payload = {
        "userId": user.user_id,
        "email": user.email,
        "purpose": "n8n-webhook",
        "timestamp": int(time.time() * 1000),
        "iat": now,
        "exp": now + timedelta(seconds=WEBHOOK_TOKEN_TTL_SECONDS),
    }
    return pyjwt.encode(payload, secret, algorithm=ALGORITHM)
