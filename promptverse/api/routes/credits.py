"""Credit routes — balance, ledger history, explicit consumption, and earned credits."""

from fastapi import APIRouter, Depends, HTTPException, Query

from promptverse.api.errors import http_error
from promptverse.core.auth import AuthUser, require_auth
from promptverse.core.exceptions import PromptVerseError
from promptverse.db.base import get_session_factory
from promptverse.db.models.user import User
from promptverse.schemas.credits import (
    ActivityResponse,
    BalanceResponse,
    CreditLogEntry,
    DeductRequest,
    DeductResponse,
    HistoryResponse,
    ReferralSummaryResponse,
    SurveyRequest,
    SurveyResponse,
    SurveyStatusResponse,
)
from promptverse.services import ledger
from promptverse.services.rewards_service import SURVEY_REWARD, RewardsService

router = APIRouter()


def get_rewards_service() -> RewardsService:
    return RewardsService(get_session_factory())


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(user: AuthUser = Depends(require_auth)):
    """Current credit balance and plan policy for the user."""
    factory = get_session_factory()
    async with factory() as session:
        db_user = await session.get(User, user.user_id)
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")

    return BalanceResponse(
        credits=db_user.credits,
        credits_used=db_user.credits_used,
        current_plan=db_user.current_plan,
        allowed_models=list(db_user.allowed_models or []),
    )


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    limit: int = Query(50, ge=1, le=200),
    user: AuthUser = Depends(require_auth),
):
    """The user's ledger entries, newest first."""
    factory = get_session_factory()
    async with factory() as session:
        entries = await ledger.history(session, user.user_id, limit=limit)

    return HistoryResponse(entries=[CreditLogEntry.from_log(e) for e in entries])


@router.post("/deduct", response_model=DeductResponse)
async def deduct_credits(body: DeductRequest, user: AuthUser = Depends(require_auth)):
    """Spend credits; 400 with creditsNeeded/creditsAvailable when the balance is short."""
    factory = get_session_factory()
    try:
        async with factory() as session:
            balance = await ledger.debit(
                session,
                user.user_id,
                body.amount,
                source="manual",
                description=body.description or f"Deducted {body.amount} credits",
            )
            await session.commit()
    except PromptVerseError as exc:
        raise http_error(exc)

    return DeductResponse(credits=balance, deducted=body.amount)


@router.post("/survey", response_model=SurveyResponse)
async def submit_survey(
    body: SurveyRequest,
    user: AuthUser = Depends(require_auth),
    service: RewardsService = Depends(get_rewards_service),
):
    """Store survey answers and grant the one-time survey reward."""
    try:
        balance = await service.complete_survey(user.user_id, body.responses)
    except PromptVerseError as exc:
        raise http_error(exc)

    return SurveyResponse(
        message=f"Survey submitted. {SURVEY_REWARD} credits have been added to your account.",
        credits_awarded=SURVEY_REWARD,
        credits=balance,
    )


@router.get("/survey/status", response_model=SurveyStatusResponse)
async def get_survey_status(
    user: AuthUser = Depends(require_auth),
    service: RewardsService = Depends(get_rewards_service),
):
    try:
        status = await service.survey_status(user.user_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return SurveyStatusResponse(**status)


@router.get("/referrals", response_model=ReferralSummaryResponse)
async def get_referrals(
    user: AuthUser = Depends(require_auth),
    service: RewardsService = Depends(get_rewards_service),
):
    """Referral code, share link, and credits earned from referrals."""
    try:
        summary = await service.referral_summary(user.user_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return ReferralSummaryResponse(**summary)


@router.get("/activity", response_model=ActivityResponse)
async def get_activity(
    limit: int = Query(20, ge=1, le=100),
    user: AuthUser = Depends(require_auth),
    service: RewardsService = Depends(get_rewards_service),
):
    """Recent ledger entries with lifetime totals per entry type."""
    try:
        entries, totals = await service.activity(user.user_id, limit=limit)
    except PromptVerseError as exc:
        raise http_error(exc)
    return ActivityResponse(entries=[CreditLogEntry.from_log(e) for e in entries], totals=totals)
