"""Analysis routes — scheduled prompts, analysis dispatch, and n8n callbacks.

User routes authenticate with the session JWT. The n8n routes (prompts-due,
update-run, webhook/result) authenticate with the shared x-api-key header.
"""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from promptverse.api.errors import http_error
from promptverse.core.auth import (
    WEBHOOK_TOKEN_TTL_SECONDS,
    AuthUser,
    create_webhook_token,
    require_auth,
    require_n8n_key,
)
from promptverse.core.config import get_settings
from promptverse.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    PromptVerseError,
    ValidationError,
)
from promptverse.db.base import get_session_factory
from promptverse.domain.ids import normalize_id
from promptverse.schemas.analysis import (
    InitiateAnalysisRequest,
    InitiateAnalysisResponse,
    ScheduledPromptListResponse,
    ScheduledPromptResponse,
    ScheduleFromReportRequest,
    StorePromptsRequest,
    UpdateRunRequest,
    UpdateRunResponse,
    UpdateScheduledPromptRequest,
    WebhookResultRequest,
    WebhookResultResponse,
    WebhookTokenResponse,
)
from promptverse.services.analysis_service import dispatch_analysis
from promptverse.services.report_service import ReportService
from promptverse.services.schedule_service import ScheduleService

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_schedule_service() -> ScheduleService:
    """Dependency that provides ScheduleService. Override in tests via app.dependency_overrides."""
    return ScheduleService(get_session_factory())


def get_report_service() -> ReportService:
    return ReportService(get_session_factory())


# ── User routes ─────────────────────────────────────────────────────


@router.post("/store-prompts", response_model=ScheduledPromptResponse, status_code=201)
async def store_prompts(
    body: StorePromptsRequest,
    user: AuthUser = Depends(require_auth),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Save prompts for recurring analysis; first run is 24 hours out."""
    try:
        schedule = await service.store_prompts(
            user.user_id,
            brand_name=body.brand_name,
            brand_url=body.brand_url,
            prompts=body.prompts,
            ai_models=body.ai_models,
            brand_id=body.brand_id,
            search_scope=body.search_scope,
            location=body.location,
            language=body.language,
            frequency=body.schedule_frequency,
        )
    except PromptVerseError as exc:
        raise http_error(exc)
    return ScheduledPromptResponse.model_validate(schedule)


@router.get("/scheduled-prompts", response_model=ScheduledPromptListResponse)
async def list_scheduled_prompts(
    is_active: bool | None = Query(None, alias="isActive"),
    user: AuthUser = Depends(require_auth),
    service: ScheduleService = Depends(get_schedule_service),
):
    """The user's schedules, newest first."""
    schedules = await service.list_for_user(user.user_id, is_active=is_active)
    return ScheduledPromptListResponse(
        count=len(schedules),
        data=[ScheduledPromptResponse.model_validate(s) for s in schedules],
    )


@router.post("/schedule-from-report", response_model=ScheduledPromptResponse, status_code=201)
async def schedule_from_report(
    body: ScheduleFromReportRequest,
    user: AuthUser = Depends(require_auth),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create a recurring schedule from a completed report's prompts."""
    try:
        schedule = await service.schedule_from_report(user.user_id, body.report_id, body.schedule_frequency)
    except PromptVerseError as exc:
        raise http_error(exc)
    return ScheduledPromptResponse.model_validate(schedule)


@router.put("/scheduled-prompts/{schedule_id}", response_model=ScheduledPromptResponse)
async def update_scheduled_prompt(
    schedule_id: str,
    body: UpdateScheduledPromptRequest,
    user: AuthUser = Depends(require_auth),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        schedule = await service.update(
            user.user_id,
            schedule_id,
            prompts=body.prompts,
            ai_models=body.ai_models,
            frequency=body.schedule_frequency,
            is_active=body.is_active,
        )
    except PromptVerseError as exc:
        raise http_error(exc)
    return ScheduledPromptResponse.model_validate(schedule)


@router.put("/scheduled-prompts/{schedule_id}/toggle", response_model=ScheduledPromptResponse)
async def toggle_scheduled_prompt(
    schedule_id: str,
    user: AuthUser = Depends(require_auth),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        schedule = await service.toggle(user.user_id, schedule_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return ScheduledPromptResponse.model_validate(schedule)


@router.delete("/scheduled-prompts/{schedule_id}")
async def delete_scheduled_prompt(
    schedule_id: str,
    user: AuthUser = Depends(require_auth),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        await service.delete(user.user_id, schedule_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return {"message": "Scheduled prompt deleted successfully"}


@router.post("/initiate", response_model=InitiateAnalysisResponse)
async def initiate_analysis(
    body: InitiateAnalysisRequest,
    background_tasks: BackgroundTasks,
    user: AuthUser = Depends(require_auth),
):
    """Answer immediately, then fan the prompt x model calls out to n8n in the background."""
    if not body.brand_name or not body.brand_url or not body.prompts or not body.ai_models:
        raise HTTPException(status_code=400, detail="Brand name, URL, prompts, and AI models are required")

    settings = get_settings()
    if not settings.n8n_webhook_url:
        raise HTTPException(status_code=500, detail="N8N_WEBHOOK_URL not configured")

    background_tasks.add_task(
        dispatch_analysis,
        settings.n8n_webhook_url,
        body.brand_name,
        body.brand_url,
        body.prompts,
        body.ai_models,
        settings.analysis_call_timeout_seconds,
    )

    logger.info("analysis_initiated", user_id=user.user_id, prompts=len(body.prompts), ai_models=len(body.ai_models))
    return InitiateAnalysisResponse(
        message="Analysis started",
        total_calls=len(body.prompts) * len(body.ai_models),
        prompts=len(body.prompts),
        ai_models=len(body.ai_models),
    )


@router.post("/generate-webhook-token", response_model=WebhookTokenResponse)
async def generate_webhook_token(user: AuthUser = Depends(require_auth)):
    """Short-lived token n8n presents when calling back on the user's behalf."""
    return WebhookTokenResponse(token=create_webhook_token(user), expires_in=WEBHOOK_TOKEN_TTL_SECONDS)


# ── n8n routes (x-api-key) ──────────────────────────────────────────


@router.get(
    "/prompts-due",
    response_model=ScheduledPromptListResponse,
    dependencies=[Depends(require_n8n_key)],
)
async def get_prompts_due(service: ScheduleService = Depends(get_schedule_service)):
    """Active schedules that are due now, oldest next_run first."""
    schedules = await service.find_due()
    return ScheduledPromptListResponse(
        count=len(schedules),
        data=[ScheduledPromptResponse.model_validate(s) for s in schedules],
    )


@router.put(
    "/scheduled-prompts/{schedule_id}/update-run",
    response_model=UpdateRunResponse,
    dependencies=[Depends(require_n8n_key)],
)
async def update_scheduled_prompt_run(
    schedule_id: str,
    body: UpdateRunRequest | None = None,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Record a completed run and compute the next one from the completion time."""
    body = body or UpdateRunRequest()
    try:
        normalized_id = normalize_id(schedule_id, "scheduled prompt id")
        if normalized_id is None:
            raise ValidationError("Scheduled prompt id is required")
        schedule = await service.record_run(
            normalized_id,
            completed_at=body.completed_at,
            report_id=normalize_id(body.report_id, "reportId"),
        )
    except PromptVerseError as exc:
        raise http_error(exc)
    return UpdateRunResponse(last_run=schedule.last_run, next_run=schedule.next_run)


@router.post(
    "/webhook/result",
    response_model=WebhookResultResponse,
    dependencies=[Depends(require_n8n_key)],
)
async def receive_n8n_result(
    body: WebhookResultRequest,
    schedules: ScheduleService = Depends(get_schedule_service),
    reports: ReportService = Depends(get_report_service),
):
    """Persist a finished analysis and, for scheduled runs, advance the schedule."""
    try:
        user_id = normalize_id(body.user_id, "userId")
        if user_id is None:
            raise ValidationError("userId is required")
        scheduled_prompt_id = normalize_id(body.scheduled_prompt_id, "scheduledPromptId")

        report = await reports.create_from_callback(
            user_id,
            brand_name=body.brand_name,
            brand_url=body.brand_url,
            report_data=body.report_data if body.report_data is not None else [],
            brand_id=normalize_id(body.brand_id, "brandId"),
            scheduled_prompt_id=scheduled_prompt_id,
            report_date=body.report_date,
            platforms=body.platforms,
            search_scope=body.search_scope,
            location=body.location,
            language=body.language,
        )
    except PromptVerseError as exc:
        raise http_error(exc)

    next_run = None
    if scheduled_prompt_id:
        try:
            await schedules.get_for_user(user_id, scheduled_prompt_id)
        except (NotFoundError, PermissionDeniedError) as exc:
            logger.warning(
                "webhook_result_schedule_skipped",
                scheduled_prompt_id=scheduled_prompt_id,
                user_id=user_id,
                reason=exc.message,
            )
        else:
            schedule = await schedules.record_run(
                scheduled_prompt_id,
                completed_at=report.report_date,
                report_id=report.id,
            )
            next_run = schedule.next_run

    return WebhookResultResponse(
        message="Result received successfully",
        report_id=report.id,
        scheduled_prompt_id=scheduled_prompt_id,
        next_run=next_run,
    )
