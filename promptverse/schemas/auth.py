"""Auth Pydantic schemas."""

from datetime import datetime

from promptverse.schemas.base import CamelModel


class RegisterRequest(CamelModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    referral_code: str | None = None


class LoginRequest(CamelModel):
    email: str | None = None
    password: str | None = None


class UserProfile(CamelModel):
    """Public view of a User; never carries the password hash."""

    id: str
    name: str
    email: str | None
    role: str
    auth_provider: str
    credits: int
    credits_used: int
    current_plan: str
    subscription_tier: str
    subscription_status: str
    allowed_models: list[str]
    referral_code: str | None
    referral_count: int
    survey_completed: bool
    last_login: datetime | None
    created_at: datetime


class AuthResponse(CamelModel):
    token: str
    user: UserProfile


class LogoutResponse(CamelModel):
    message: str
