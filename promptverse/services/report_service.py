"""ReportService — report save/resume state machine and read paths.

Transitions:
- in-progress -> in-progress (save_progress checkpoint)
- in-progress -> completed (save_report finalize)
- (nothing) -> completed (save_report create, completion callback)

There is no path from completed back to in-progress, and stats are written
exactly once, when the report becomes completed.
"""

import enum
import math
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import defer

from promptverse.core.exceptions import NotFoundError, UserNotFoundError, ValidationError
from promptverse.db.models.prompt_record import PromptResponse, PromptSent
from promptverse.db.models.report import Report
from promptverse.db.models.user import User
from promptverse.domain.report_stats import compute_report_stats, trend_point
from promptverse.domain.schedule import as_utc
from promptverse.metrics.cloudwatch import emit_business_event
from promptverse.services import ledger

logger = structlog.get_logger(__name__)

IN_PROGRESS = "in-progress"
COMPLETED = "completed"


class SaveOutcome(enum.Enum):
    UPDATED = "updated"
    NOT_FOUND_CREATED_NEW = "not_found_created_new"
    NOT_FOUND_REJECTED = "not_found_rejected"


@dataclass
class SaveResult:
    report: Report | None
    outcome: SaveOutcome


def _brand_columns(brand_data: dict, brand_id: str | None = None) -> dict:
    """Map the client's brandData payload onto Report columns."""
    return {
        "brand_id": brand_id or brand_data.get("brandId") or None,
        "brand_name": brand_data.get("brandName"),
        "brand_url": brand_data.get("websiteUrl") or brand_data.get("brandUrl"),
        "favicon": brand_data.get("favicon"),
        "search_scope": brand_data.get("searchScope"),
        "location": brand_data.get("location"),
        "country": brand_data.get("country"),
        "language": brand_data.get("language") or "English",
        "platforms": brand_data.get("platforms") or {},
    }


def _require_brand(brand_data: dict | None) -> dict:
    if not brand_data or not brand_data.get("brandName"):
        raise ValidationError("Brand data is required")
    if not (brand_data.get("websiteUrl") or brand_data.get("brandUrl")):
        raise ValidationError("Brand website URL is required")
    return brand_data


def _prompt_sent_row(user_id: str, report_id: str, item: dict) -> PromptSent:
    return PromptSent(
        user_id=user_id,
        report_id=report_id,
        prompt=item.get("prompt") or "",
        brand=item.get("brand"),
        brand_url=item.get("brandUrl"),
        chatgpt=bool(item.get("chatgpt")),
        perplexity=bool(item.get("perplexity")),
        google_ai_overviews=bool(item.get("google_ai_overviews")),
        location=item.get("location"),
        country=item.get("country"),
        category=item.get("category"),
        prompt_index=item.get("promptIndex"),
        status=item.get("status") or "sent",
    )


def _prompt_response_row(user_id: str, report_id: str, item: dict) -> PromptResponse:
    status = item.get("status")
    return PromptResponse(
        user_id=user_id,
        report_id=report_id,
        prompt=item.get("prompt") or "",
        category=item.get("category"),
        success=bool(item.get("success")),
        prompt_index=item.get("promptIndex"),
        status=status if isinstance(status, int) else None,
        response=item.get("response"),
        error=item.get("error"),
    )


class ReportService:
    """Service layer for reports."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ── Save / resume ───────────────────────────────────────────────

    async def save_progress(
        self,
        user_id: str,
        *,
        brand_data: dict | None,
        current_step: int | str | None,
        report_id: str | None = None,
        form_data: dict | None = None,
        step2_data: dict | None = None,
    ) -> SaveResult:
        """Checkpoint a report that is still being configured.

        Without ``report_id`` a new in-progress report is created. With one, only
        an in-progress report owned by the user is updated; anything else is
        NOT_FOUND_REJECTED and nothing is written.
        """
        if current_step is None or current_step == "":
            raise ValidationError("Brand data and current step are required")
        _require_brand(brand_data)

        progress = {
            "currentStep": current_step,
            "formData": form_data,
            "step2Data": step2_data,
            "lastUpdated": datetime.now(UTC).isoformat(),
        }
        columns = _brand_columns(brand_data)

        async with self.session_factory() as session:
            if report_id:
                result = await session.execute(
                    select(Report).where(
                        Report.id == report_id,
                        Report.user_id == user_id,
                        Report.status == IN_PROGRESS,
                    )
                )
                report = result.scalar_one_or_none()
                if report is None:
                    logger.info("report_progress_rejected", user_id=user_id, report_id=report_id)
                    return SaveResult(report=None, outcome=SaveOutcome.NOT_FOUND_REJECTED)

                for key, value in columns.items():
                    if key == "language" and not brand_data.get("language"):
                        continue
                    setattr(report, key, value)
                report.progress = progress
                outcome = SaveOutcome.UPDATED
            else:
                report = Report(
                    user_id=user_id,
                    report_data=[],
                    status=IN_PROGRESS,
                    progress=progress,
                    **columns,
                )
                session.add(report)
                outcome = SaveOutcome.NOT_FOUND_CREATED_NEW

            await session.commit()
            await session.refresh(report)

        logger.info("report_progress_saved", user_id=user_id, report_id=report.id, outcome=outcome.value)
        return SaveResult(report=report, outcome=outcome)

    async def save_report(
        self,
        user_id: str,
        *,
        brand_data: dict | None,
        report_data: list | None,
        in_progress_report_id: str | None = None,
        brand_id: str | None = None,
        prompts_sent: list | None = None,
        prompt_responses: list | None = None,
        prompts_count: int | None = None,
    ) -> SaveResult:
        """Complete a report, charging one credit per generated prompt.

        The debit, its ledger entry, the report row and the prompt records commit
        in one transaction. If the balance is too low nothing is written.

        Raises:
            ValidationError: brand data or report data missing
            InsufficientCreditsError: balance below ``prompts_count``
        """
        if report_data is None:
            raise ValidationError("Brand data and report data are required")
        _require_brand(brand_data)
        if not isinstance(report_data, list):
            raise ValidationError("Report data must be a list")

        columns = _brand_columns(brand_data, brand_id)
        stats = compute_report_stats(report_data)

        async with self.session_factory() as session:
            if prompts_count and prompts_count > 0:
                await ledger.debit(
                    session,
                    user_id,
                    prompts_count,
                    source="report",
                    description=f"Analysis of {prompts_count} prompts for {columns['brand_name']}",
                    metadata={"promptsCount": prompts_count, "brandName": columns["brand_name"]},
                )

            report = None
            if in_progress_report_id:
                result = await session.execute(
                    select(Report).where(
                        Report.id == in_progress_report_id,
                        Report.user_id == user_id,
                        Report.status == IN_PROGRESS,
                    )
                )
                report = result.scalar_one_or_none()

            if report is not None:
                for key, value in columns.items():
                    setattr(report, key, value)
                report.report_data = report_data
                report.stats = stats
                report.status = COMPLETED
                report.progress = None
                outcome = SaveOutcome.UPDATED
            else:
                report = Report(
                    user_id=user_id,
                    report_data=report_data,
                    stats=stats,
                    status=COMPLETED,
                    **columns,
                )
                session.add(report)
                outcome = SaveOutcome.NOT_FOUND_CREATED_NEW

            await session.flush()

            for item in prompts_sent or []:
                if isinstance(item, dict):
                    session.add(_prompt_sent_row(user_id, report.id, item))
            for item in prompt_responses or []:
                if isinstance(item, dict):
                    session.add(_prompt_response_row(user_id, report.id, item))

            await session.commit()
            await session.refresh(report)

        logger.info(
            "report_saved",
            user_id=user_id,
            report_id=report.id,
            outcome=outcome.value,
            prompts_count=prompts_count or 0,
            success_rate=stats["successRate"],
        )
        await emit_business_event("report_saved", user_id=user_id)
        return SaveResult(report=report, outcome=outcome)

    async def create_from_callback(
        self,
        user_id: str,
        *,
        brand_name: str,
        brand_url: str,
        report_data: list,
        brand_id: str | None = None,
        scheduled_prompt_id: str | None = None,
        report_date: datetime | None = None,
        platforms: dict | None = None,
        search_scope: str | None = None,
        location: str | None = None,
        language: str | None = None,
    ) -> Report:
        """Create a completed report delivered by the workflow engine."""
        if not brand_name or not brand_url:
            raise ValidationError("brandName and brandUrl are required")
        if not isinstance(report_data, list):
            raise ValidationError("reportData must be a list")

        report = Report(
            user_id=user_id,
            brand_id=brand_id,
            scheduled_prompt_id=scheduled_prompt_id,
            brand_name=brand_name,
            brand_url=brand_url,
            search_scope=search_scope,
            location=location,
            language=language or "English",
            platforms=platforms or {},
            report_data=report_data,
            stats=compute_report_stats(report_data),
            report_date=as_utc(report_date or datetime.now(UTC)),
            status=COMPLETED,
        )
        async with self.session_factory() as session:
            if await session.get(User, user_id) is None:
                raise UserNotFoundError(f"User {user_id} not found")
            session.add(report)
            await session.commit()
            await session.refresh(report)

        logger.info("report_received", user_id=user_id, report_id=report.id, scheduled_prompt_id=scheduled_prompt_id)
        return report

    # ── Read paths ──────────────────────────────────────────────────

    async def list_reports(self, user_id: str, page: int = 1, limit: int = 20) -> dict:
        """Page of the user's reports (newest first) without report_data."""
        page = max(page, 1)
        limit = max(limit, 1)

        async with self.session_factory() as session:
            total = (
                await session.execute(select(func.count(Report.id)).where(Report.user_id == user_id))
            ).scalar() or 0
            result = await session.execute(
                select(Report)
                .options(defer(Report.report_data))
                .where(Report.user_id == user_id)
                .order_by(Report.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            reports = list(result.scalars().all())

        return {
            "reports": reports,
            "total": total,
            "current_page": page,
            "total_pages": math.ceil(total / limit),
        }

    async def get_report(self, user_id: str, report_id: str) -> Report:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Report).where(Report.id == report_id, Report.user_id == user_id)
            )
            report = result.scalar_one_or_none()
        if report is None:
            raise NotFoundError("Report not found")
        return report

    async def share_report(self, user_id: str, report_id: str) -> Report:
        """Enable sharing, minting a share token the first time."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Report).where(Report.id == report_id, Report.user_id == user_id)
            )
            report = result.scalar_one_or_none()
            if report is None:
                raise NotFoundError("Report not found")

            if not report.share_token:
                report.share_token = secrets.token_hex(16)
                report.is_shared = True
                await session.commit()
                await session.refresh(report)
                logger.info("report_shared", user_id=user_id, report_id=report_id)

        return report

    async def get_shared_report(self, token: str) -> Report:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Report).where(Report.share_token == token, Report.is_shared.is_(True))
            )
            report = result.scalar_one_or_none()
        if report is None:
            raise NotFoundError("Shared report not found or has been made private")
        return report

    async def delete_report(self, user_id: str, report_id: str) -> None:
        """Delete a report together with its prompt records."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Report).where(Report.id == report_id, Report.user_id == user_id)
            )
            report = result.scalar_one_or_none()
            if report is None:
                raise NotFoundError("Report not found")

            await session.execute(delete(PromptSent).where(PromptSent.report_id == report_id))
            await session.execute(delete(PromptResponse).where(PromptResponse.report_id == report_id))
            await session.delete(report)
            await session.commit()

        logger.info("report_deleted", user_id=user_id, report_id=report_id)

    async def latest_for_brand(self, user_id: str, brand_id: str) -> Report:
        """Newest completed report for the brand, else the newest in-progress one."""
        async with self.session_factory() as session:
            for status in (COMPLETED, IN_PROGRESS):
                result = await session.execute(
                    select(Report)
                    .options(defer(Report.report_data))
                    .where(Report.brand_id == brand_id, Report.user_id == user_id, Report.status == status)
                    .order_by(Report.created_at.desc())
                    .limit(1)
                )
                report = result.scalar_one_or_none()
                if report is not None:
                    return report
        raise NotFoundError("No report found for this brand")

    async def reports_for_brand(self, user_id: str, brand_id: str) -> list[Report]:
        """Completed reports for a brand, newest first, with report_data."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Report)
                .where(Report.brand_id == brand_id, Report.user_id == user_id, Report.status == COMPLETED)
                .order_by(Report.created_at.desc())
            )
            return list(result.scalars().all())

    async def visibility_trend(
        self,
        user_id: str,
        brand_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict:
        """Chart points for completed reports in [start, end], oldest first.

        ``end`` is inclusive of the whole day. Fewer than two reports yields no
        points and an explanatory message.
        """
        stmt = select(Report.report_date, Report.created_at, Report.stats).where(
            Report.brand_id == brand_id,
            Report.user_id == user_id,
            Report.status == COMPLETED,
        )
        if start is not None:
            stmt = stmt.where(Report.report_date >= as_utc(start))
        if end is not None:
            stmt = stmt.where(Report.report_date < as_utc(end) + timedelta(days=1))
        stmt = stmt.order_by(Report.report_date.asc())

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        if len(rows) < 2:
            message = (
                "No reports found for this brand"
                if not rows
                else "At least 2 reports are required to show trend"
            )
            return {"count": len(rows), "data": [], "message": message}

        data = [trend_point(row.report_date, row.created_at, row.stats) for row in rows]
        return {"count": len(data), "data": data, "message": None}
