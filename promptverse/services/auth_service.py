"""AuthService — local accounts: registration, password login, profile lookup.

New accounts start on the free plan with zero credits, a fresh referral code,
and any referral bonus applied in the same transaction.
"""

import re
from datetime import UTC, datetime

import bcrypt
import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promptverse.core.config import get_settings
from promptverse.core.exceptions import AuthenticationError, UserNotFoundError, ValidationError
from promptverse.core.plans import FREE_MODELS
from promptverse.db.models.user import User
from promptverse.services.rewards_service import apply_referral, generate_referral_code

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
MIN_PASSWORD_LENGTH = 6
# bcrypt ignores (newer releases reject) input past 72 bytes
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    encoded = password.encode("utf-8")
    if not password_hash or len(encoded) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Service layer for local user accounts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def register(
        self,
        *,
        name: str | None,
        email: str | None,
        password: str | None,
        referral_code: str | None = None,
    ) -> User:
        """Create a local account.

        Raises:
            ValidationError: missing/invalid fields, or the email is taken
        """
        name = (name or "").strip()
        email = normalize_email(email)
        if not name:
            raise ValidationError("Please provide a name")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Please provide a valid email")
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

        async with self.session_factory() as session:
            existing = await session.execute(select(User.id).where(User.email == email))
            if existing.scalar_one_or_none() is not None:
                raise ValidationError("User already exists")

            user = User(
                name=name,
                email=email,
                password_hash=hash_password(password),
                auth_provider="local",
                credits=0,
                credits_used=0,
                current_plan="free",
                subscription_tier="free",
                allowed_models=list(FREE_MODELS),
                subscription_status="inactive",
                referral_code=await generate_referral_code(session),
                last_login=datetime.now(UTC),
            )
            session.add(user)
            try:
                await session.flush()
            except IntegrityError:
                # Concurrent registration with the same email won the race
                await session.rollback()
                raise ValidationError("User already exists")

            referrer_id = await apply_referral(session, user.id, referral_code)
            await session.commit()
            await session.refresh(user)

        logger.info("user_registered", user_id=user.id, referred=referrer_id is not None)
        return user

    async def authenticate(self, email: str | None, password: str | None) -> User:
        """Check an email/password pair and stamp ``last_login``.

        Raises:
            AuthenticationError: unknown email or wrong password
        """
        if not email or not password:
            raise ValidationError("Please provide an email and password")

        async with self.session_factory() as session:
            result = await session.execute(select(User).where(User.email == normalize_email(email)))
            user = result.scalar_one_or_none()
            if user is None or not verify_password(password, user.password_hash):
                logger.warning("login_failed", email_known=user is not None)
                raise AuthenticationError("Invalid credentials")

            user.last_login = datetime.now(UTC)
            await session.commit()

        logger.info("user_logged_in", user_id=user.id)
        return user

    async def get_user(self, user_id: str) -> User:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user
