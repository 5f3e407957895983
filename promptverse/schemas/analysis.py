"""Analysis Pydantic schemas — scheduled prompts, dispatch, and n8n callbacks."""

from datetime import datetime
from typing import Any

from promptverse.schemas.base import CamelModel

# Ids coming from n8n may be wrapped as {"$oid": "..."}
RawId = str | dict[str, Any] | None


class StorePromptsRequest(CamelModel):
    """Request to store prompts for recurring analysis."""

    brand_name: str | None = None
    brand_url: str | None = None
    brand_id: str | None = None
    prompts: list[Any] | None = None
    ai_models: list[str] | None = None
    search_scope: str | None = None
    location: str | None = None
    language: str | None = None
    schedule_frequency: str | None = None


class ScheduleFromReportRequest(CamelModel):
    report_id: str
    schedule_frequency: str | None = None


class UpdateScheduledPromptRequest(CamelModel):
    """Partial update; omitted fields are left unchanged."""

    prompts: list[Any] | None = None
    ai_models: list[str] | None = None
    schedule_frequency: str | None = None
    is_active: bool | None = None


class ScheduledPromptResponse(CamelModel):
    id: str
    user_id: str
    brand_id: str | None
    brand_name: str
    brand_url: str
    prompts: list[dict[str, Any]]
    ai_models: list[str]
    search_scope: str
    location: str | None
    language: str
    is_active: bool
    schedule_frequency: str
    last_run: datetime | None
    last_report_id: str | None
    next_run: datetime | None
    created_at: datetime
    updated_at: datetime


class ScheduledPromptListResponse(CamelModel):
    count: int
    data: list[ScheduledPromptResponse]


class InitiateAnalysisRequest(CamelModel):
    brand_name: str | None = None
    brand_url: str | None = None
    prompts: list[Any] | None = None
    ai_models: list[str] | None = None


class InitiateAnalysisResponse(CamelModel):
    message: str
    total_calls: int
    prompts: int
    ai_models: int


class UpdateRunRequest(CamelModel):
    """Completion signal from n8n; both fields are optional."""

    completed_at: datetime | None = None
    report_id: RawId = None


class UpdateRunResponse(CamelModel):
    last_run: datetime
    next_run: datetime


class WebhookResultRequest(CamelModel):
    """Finished analysis delivered by n8n."""

    user_id: RawId = None
    scheduled_prompt_id: RawId = None
    brand_id: RawId = None
    brand_name: str | None = None
    brand_url: str | None = None
    report_data: list[Any] | None = None
    report_date: datetime | None = None
    platforms: dict[str, bool] | None = None
    search_scope: str | None = None
    location: str | None = None
    language: str | None = None


class WebhookResultResponse(CamelModel):
    message: str
    report_id: str
    scheduled_prompt_id: str | None = None
    next_run: datetime | None = None


class WebhookTokenResponse(CamelModel):
    token: str
    expires_in: int
