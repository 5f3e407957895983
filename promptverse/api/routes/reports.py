"""Report routes — save/resume, listing, sharing, brand views, and deletion."""

from datetime import date, datetime, time, timezone

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from promptverse.api.errors import http_error
from promptverse.core.auth import AuthUser, require_auth
from promptverse.core.config import get_settings
from promptverse.core.exceptions import PromptVerseError
from promptverse.db.base import get_session_factory
from promptverse.schemas.reports import (
    BrandReportsResponse,
    ReportDetail,
    ReportListResponse,
    ReportSummary,
    SaveProgressRequest,
    SaveReportRequest,
    SaveReportResponse,
    ShareReportResponse,
    VisibilityTrendResponse,
)
from promptverse.services.report_service import ReportService, SaveOutcome

router = APIRouter()


def get_report_service() -> ReportService:
    """Dependency that provides ReportService. Override in tests via app.dependency_overrides."""
    return ReportService(get_session_factory())


def _day_start(value: date | None) -> datetime | None:
    if value is None:
        return None
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


@router.post("/save", response_model=SaveReportResponse, status_code=201)
async def save_report(
    body: SaveReportRequest,
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    """Complete a report and charge ``promptsCount`` credits in one transaction."""
    try:
        result = await service.save_report(
            user.user_id,
            brand_data=body.brand_data,
            report_data=body.report_data,
            in_progress_report_id=body.in_progress_report_id,
            brand_id=body.brand_id,
            prompts_sent=body.prompts_sent,
            prompt_responses=body.prompts_responses,
            prompts_count=body.prompts_count,
        )
    except PromptVerseError as exc:
        raise http_error(exc)

    return SaveReportResponse(
        outcome=result.outcome.value,
        report=ReportDetail.model_validate(result.report),
    )


@router.post("/save-progress", response_model=SaveReportResponse)
async def save_progress(
    body: SaveProgressRequest,
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    """Checkpoint an in-progress report; unknown report ids are rejected with 404."""
    try:
        result = await service.save_progress(
            user.user_id,
            brand_data=body.brand_data,
            current_step=body.current_step,
            report_id=body.report_id,
            form_data=body.form_data,
            step2_data=body.step2_data,
        )
    except PromptVerseError as exc:
        raise http_error(exc)

    if result.outcome is SaveOutcome.NOT_FOUND_REJECTED:
        return JSONResponse(
            status_code=404,
            content={"detail": "In-progress report not found", "outcome": result.outcome.value},
        )

    return SaveReportResponse(
        outcome=result.outcome.value,
        report=ReportDetail.model_validate(result.report),
    )


@router.get("/list", response_model=ReportListResponse)
async def list_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    """Page of the user's reports, without report data."""
    result = await service.list_reports(user.user_id, page=page, limit=limit)
    return ReportListResponse(
        reports=[ReportSummary.model_validate(r) for r in result["reports"]],
        total=result["total"],
        current_page=result["current_page"],
        total_pages=result["total_pages"],
    )


@router.get("/by-brand/{brand_id}", response_model=ReportSummary)
async def get_report_by_brand(
    brand_id: str,
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    """Latest completed report for the brand, falling back to an in-progress one."""
    try:
        report = await service.latest_for_brand(user.user_id, brand_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return ReportSummary.model_validate(report)


@router.get("/brand/{brand_id}", response_model=BrandReportsResponse)
@router.get("/brand/{brand_id}/all", response_model=BrandReportsResponse)
async def get_reports_by_brand(
    brand_id: str,
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    reports = await service.reports_for_brand(user.user_id, brand_id)
    return BrandReportsResponse(
        count=len(reports),
        data=[ReportDetail.model_validate(r) for r in reports],
    )


@router.get("/brand/{brand_id}/visibility-trend", response_model=VisibilityTrendResponse)
async def get_visibility_trend(
    brand_id: str,
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    """Chart points for completed reports; the end date is inclusive."""
    result = await service.visibility_trend(
        user.user_id,
        brand_id,
        start=_day_start(start_date),
        end=_day_start(end_date),
    )
    return VisibilityTrendResponse.model_validate(result)


@router.get("/shared/{token}", response_model=ReportDetail)
async def get_shared_report(
    token: str,
    service: ReportService = Depends(get_report_service),
):
    """Public view of a shared report."""
    try:
        report = await service.get_shared_report(token)
    except PromptVerseError as exc:
        raise http_error(exc)
    return ReportDetail.model_validate(report)


@router.get("/{report_id}", response_model=ReportDetail)
async def get_report(
    report_id: str,
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    try:
        report = await service.get_report(user.user_id, report_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return ReportDetail.model_validate(report)


@router.post("/{report_id}/share", response_model=ShareReportResponse)
async def share_report(
    report_id: str,
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    """Make a report public and return its share link."""
    try:
        report = await service.share_report(user.user_id, report_id)
    except PromptVerseError as exc:
        raise http_error(exc)

    share_url = f"{get_settings().frontend_url}/shared/{report.share_token}"
    return ShareReportResponse(share_token=report.share_token, share_url=share_url)


@router.delete("/{report_id}")
async def delete_report(
    report_id: str,
    user: AuthUser = Depends(require_auth),
    service: ReportService = Depends(get_report_service),
):
    try:
        await service.delete_report(user.user_id, report_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return {"message": "Report deleted successfully"}
