"""Auth routes — local registration, password login, logout, and the current user.

Login and registration return the session JWT in the body and set it as the
``token`` cookie that require_auth also reads.
"""

import structlog
from fastapi import APIRouter, Depends, Response

from promptverse.api.errors import http_error
from promptverse.core.auth import SESSION_COOKIE, AuthUser, create_access_token, require_auth
from promptverse.core.config import get_settings
from promptverse.core.exceptions import PromptVerseError
from promptverse.db.base import get_session_factory
from promptverse.db.models.user import User
from promptverse.schemas.auth import AuthResponse, LoginRequest, LogoutResponse, RegisterRequest, UserProfile
from promptverse.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_auth_service() -> AuthService:
    return AuthService(get_session_factory())


def _cookie_options() -> dict:
    # Cross-site frontends need SameSite=None, which browsers only accept on secure cookies
    secure = not get_settings().debug
    return {"httponly": True, "secure": secure, "samesite": "none" if secure else "lax"}


def _session_response(response: Response, user: User) -> AuthResponse:
    token = create_access_token(user.id, email=user.email)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=get_settings().jwt_expire_days * 24 * 60 * 60,
        **_cookie_options(),
    )
    return AuthResponse(token=token, user=UserProfile.model_validate(user))


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """Create a local account and start a session."""
    try:
        user = await service.register(
            name=body.name,
            email=body.email,
            password=body.password,
            referral_code=body.referral_code,
        )
    except PromptVerseError as exc:
        raise http_error(exc)
    return _session_response(response, user)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    try:
        user = await service.authenticate(body.email, body.password)
    except PromptVerseError as exc:
        raise http_error(exc)
    return _session_response(response, user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response):
    """Clear the session cookie. Bearer tokens simply expire."""
    response.delete_cookie(SESSION_COOKIE, **_cookie_options())
    return LogoutResponse(message="Logged out successfully")


@router.get("/me", response_model=UserProfile)
async def me(
    user: AuthUser = Depends(require_auth),
    service: AuthService = Depends(get_auth_service),
):
    try:
        db_user = await service.get_user(user.user_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return UserProfile.model_validate(db_user)
