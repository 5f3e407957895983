"""Credit Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import Field

from promptverse.schemas.base import CamelModel


class BalanceResponse(CamelModel):
    credits: int
    credits_used: int
    current_plan: str
    allowed_models: list[str]


class CreditLogEntry(CamelModel):
    id: str
    amount: int
    type: str
    source: str
    description: str
    metadata: dict[str, Any] | None
    balance_after: int
    created_at: datetime

    @classmethod
    def from_log(cls, entry) -> "CreditLogEntry":
        # CreditLog keeps the metadata column under ``details``
        return cls(
            id=entry.id,
            amount=entry.amount,
            type=entry.type,
            source=entry.source,
            description=entry.description,
            metadata=entry.details,
            balance_after=entry.balance_after,
            created_at=entry.created_at,
        )


class HistoryResponse(CamelModel):
    entries: list[CreditLogEntry]


class DeductRequest(CamelModel):
    amount: int = Field(..., gt=0)
    description: str = ""


class DeductResponse(CamelModel):
    credits: int
    deducted: int


class SurveyRequest(CamelModel):
    responses: dict[str, Any] | None = None


class SurveyResponse(CamelModel):
    message: str
    credits_awarded: int
    credits: int


class SurveyStatusResponse(CamelModel):
    completed: bool
    completed_at: datetime | None
    reward: int


class ReferralSummaryResponse(CamelModel):
    referral_code: str
    referral_count: int
    shareable_link: str
    reward_per_referral: int
    credits_earned: int


class ActivityResponse(CamelModel):
    entries: list[CreditLogEntry]
    totals: dict[str, int]
