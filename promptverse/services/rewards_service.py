"""RewardsService — credits users earn rather than buy.

- Survey: one-time grant of SURVEY_REWARD credits
- Referrals: REFERRAL_REWARD credits to the referrer and to the new account
- Activity: recent ledger entries with per-type totals

Every grant is a ledger.credit with type "earned".
"""

import secrets
from datetime import UTC, datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promptverse.core.config import get_settings
from promptverse.core.exceptions import UserNotFoundError, ValidationError
from promptverse.db.models.credit_log import CreditLog
from promptverse.db.models.user import User
from promptverse.services import ledger

logger = structlog.get_logger(__name__)

SURVEY_REWARD = 50
REFERRAL_REWARD = 10
REFERRAL_CODE_ATTEMPTS = 10


async def generate_referral_code(session: AsyncSession) -> str:
    """Eight uppercase hex characters not yet used by any user."""
    for _ in range(REFERRAL_CODE_ATTEMPTS):
        code = secrets.token_hex(4).upper()
        taken = await session.execute(select(User.id).where(User.referral_code == code))
        if taken.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Could not generate a unique referral code")


async def apply_referral(session: AsyncSession, new_user_id: str, referral_code: str | None) -> str | None:
    """Reward both sides of a referral inside the caller's transaction.

    The new user's row must already be flushed. An unknown code (or the user's
    own code) is ignored.

    Returns:
        The referrer's id, or None when no referral was applied
    """
    code = (referral_code or "").strip().upper()
    if not code:
        return None

    result = await session.execute(select(User.id).where(User.referral_code == code, User.id != new_user_id))
    referrer_id = result.scalar_one_or_none()
    if referrer_id is None:
        logger.warning("referral_code_unknown", user_id=new_user_id, referral_code=code)
        return None

    await ledger.credit(
        session,
        referrer_id,
        REFERRAL_REWARD,
        type="earned",
        source="referral",
        description="Referral bonus: a new user signed up with your code",
        metadata={"referredUserId": new_user_id},
        fields={"referral_count": User.referral_count + 1},
    )
    await ledger.credit(
        session,
        new_user_id,
        REFERRAL_REWARD,
        type="earned",
        source="referral_signup",
        description="Welcome bonus for signing up with a referral code",
        metadata={"referrerId": referrer_id},
        fields={"referred_by": referrer_id},
    )
    logger.info("referral_applied", user_id=new_user_id, referrer_id=referrer_id)
    return referrer_id


class RewardsService:
    """Service layer for earned credits."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _get_user(self, session: AsyncSession, user_id: str) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def complete_survey(self, user_id: str, responses: dict | None, now: datetime | None = None) -> int:
        """Record survey answers and grant SURVEY_REWARD credits, once per user.

        Returns:
            Balance after the grant

        Raises:
            ValidationError: no answers, or the survey was already completed
            UserNotFoundError: no such user
        """
        if not isinstance(responses, dict) or not responses:
            raise ValidationError("Survey responses are required")

        now = now or datetime.now(UTC)
        async with self.session_factory() as session:
            claimed = await session.execute(
                update(User)
                .where(User.id == user_id, User.survey_completed.is_(False))
                .values(survey_completed=True, survey_completed_at=now, survey_responses=responses)
                .returning(User.id)
                .execution_options(synchronize_session=False)
            )
            if claimed.scalar_one_or_none() is None:
                await self._get_user(session, user_id)
                raise ValidationError("Survey already completed")

            balance = await ledger.credit(
                session,
                user_id,
                SURVEY_REWARD,
                type="earned",
                source="survey",
                description="Completed the user survey",
            )
            await session.commit()

        logger.info("survey_completed", user_id=user_id, reward=SURVEY_REWARD, balance_after=balance)
        return balance

    async def survey_status(self, user_id: str) -> dict:
        async with self.session_factory() as session:
            user = await self._get_user(session, user_id)
        return {
            "completed": bool(user.survey_completed),
            "completed_at": user.survey_completed_at,
            "reward": SURVEY_REWARD,
        }

    async def referral_summary(self, user_id: str) -> dict:
        """Referral code, share link and earnings; assigns a code to accounts missing one."""
        async with self.session_factory() as session:
            user = await self._get_user(session, user_id)
            if not user.referral_code:
                user.referral_code = await generate_referral_code(session)
                await session.commit()

            earned = await session.execute(
                select(func.coalesce(func.sum(CreditLog.amount), 0)).where(
                    CreditLog.user_id == user_id,
                    CreditLog.type == "earned",
                    CreditLog.source == "referral",
                )
            )
            credits_earned = earned.scalar_one()

        return {
            "referral_code": user.referral_code,
            "referral_count": user.referral_count,
            "shareable_link": f"{get_settings().frontend_url}/register?ref={user.referral_code}",
            "reward_per_referral": REFERRAL_REWARD,
            "credits_earned": int(credits_earned),
        }

    async def activity(self, user_id: str, limit: int = 20) -> tuple[list[CreditLog], dict[str, int]]:
        """Most recent ledger entries plus lifetime totals per entry type."""
        async with self.session_factory() as session:
            await self._get_user(session, user_id)
            entries = await ledger.history(session, user_id, limit=limit)
            result = await session.execute(
                select(CreditLog.type, func.sum(CreditLog.amount))
                .where(CreditLog.user_id == user_id)
                .group_by(CreditLog.type)
            )
            totals = {entry_type: int(total) for entry_type, total in result.all()}
        return entries, totals
