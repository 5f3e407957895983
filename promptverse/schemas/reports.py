"""Report Pydantic schemas — save/resume payloads and report views."""

from datetime import datetime
from typing import Any

from promptverse.schemas.base import CamelModel


class SaveProgressRequest(CamelModel):
    report_id: str | None = None
    brand_data: dict[str, Any] | None = None
    current_step: int | str | None = None
    form_data: dict[str, Any] | None = None
    step2_data: dict[str, Any] | None = None


class SaveReportRequest(CamelModel):
    in_progress_report_id: str | None = None
    brand_id: str | None = None
    brand_data: dict[str, Any] | None = None
    report_data: list[Any] | None = None
    prompts_sent: list[dict[str, Any]] | None = None
    prompts_responses: list[dict[str, Any]] | None = None
    prompts_count: int | None = None


class ReportSummary(CamelModel):
    """Report without the (large) report_data payload."""

    id: str
    user_id: str
    brand_id: str | None
    scheduled_prompt_id: str | None
    brand_name: str
    brand_url: str
    favicon: str | None
    search_scope: str | None
    location: str | None
    country: str | None
    language: str
    platforms: dict[str, Any]
    stats: dict[str, Any] | None
    report_date: datetime
    status: str
    progress: dict[str, Any] | None
    is_shared: bool
    created_at: datetime
    updated_at: datetime


class ReportDetail(ReportSummary):
    report_data: list[Any]


class SaveReportResponse(CamelModel):
    outcome: str
    report: ReportDetail


class ReportListResponse(CamelModel):
    reports: list[ReportSummary]
    total: int
    current_page: int
    total_pages: int


class BrandReportsResponse(CamelModel):
    count: int
    data: list[ReportDetail]


class ShareReportResponse(CamelModel):
    share_token: str
    share_url: str


class TrendPoint(CamelModel):
    date: str
    website_found: int
    brand_mentioned: int
    success_rate: int
    total_prompts: int


class VisibilityTrendResponse(CamelModel):
    count: int
    data: list[TrendPoint]
    message: str | None = None
