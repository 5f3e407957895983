"""ScheduleService — persistence for scheduled prompts polled by n8n.

Responsibilities:
- Store new schedules (from the analysis form or an existing report)
- Due-list for the workflow engine, ordered by next_run
- Completion bookkeeping: last_run / next_run / last_report_id
- Owner-checked update, toggle and delete

Date arithmetic lives in promptverse.domain.schedule.
"""

from datetime import UTC, datetime

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promptverse.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from promptverse.db.models.report import Report
from promptverse.db.models.scheduled_prompt import ScheduledPrompt
from promptverse.domain.schedule import (
    DEFAULT_FREQUENCY,
    as_utc,
    compute_next_run,
    initial_next_run,
    resequence_prompts,
)

logger = structlog.get_logger(__name__)

# Report.platforms key -> ai model name used by n8n
PLATFORM_MODELS = {
    "chatgpt": "chatgpt",
    "perplexity": "perplexity",
    "googleAiOverviews": "google_ai_overview",
}


def _normalize_prompt(prompt) -> dict:
    if isinstance(prompt, str):
        return {"text": prompt, "category": None, "categoryDescription": None}
    if isinstance(prompt, dict):
        return {
            "text": prompt.get("text") or prompt.get("prompt") or "",
            "category": prompt.get("category"),
            "categoryDescription": prompt.get("categoryDescription"),
        }
    raise ValidationError("Each prompt must be a string or an object")


def prompts_from_report_data(report_data: list) -> list[dict]:
    """Unique prompts of a report, in first-seen order."""
    seen: set[str] = set()
    prompts = []
    for item in report_data or []:
        if not isinstance(item, dict):
            continue
        text = (item.get("prompt") or "").strip()
        if not text or text in seen:
            continue
        seen.add(text)
        prompts.append({"text": text, "category": item.get("category"), "categoryDescription": None})
    return prompts


class ScheduleService:
    """Service layer for scheduled prompts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def store_prompts(
        self,
        user_id: str,
        *,
        brand_name: str | None,
        brand_url: str | None,
        prompts: list | None,
        ai_models: list | None,
        brand_id: str | None = None,
        search_scope: str | None = None,
        location: str | None = None,
        language: str | None = None,
        frequency: str | None = None,
        now: datetime | None = None,
    ) -> ScheduledPrompt:
        """Create an active schedule whose first run is 24 hours from now.

        Raises:
            ValidationError: brand name/url missing, or prompts/models empty
        """
        if not brand_name or not brand_url or not prompts or not ai_models:
            raise ValidationError("Missing required fields: brandName, brandUrl, prompts, aiModels")

        now = now or datetime.now(UTC)
        schedule = ScheduledPrompt(
            user_id=user_id,
            brand_id=brand_id,
            brand_name=brand_name,
            brand_url=brand_url,
            prompts=resequence_prompts([_normalize_prompt(p) for p in prompts]),
            ai_models=list(ai_models),
            search_scope=search_scope or "global",
            location=location,
            language=language or "English",
            is_active=True,
            schedule_frequency=frequency or DEFAULT_FREQUENCY,
            next_run=initial_next_run(now),
        )

        async with self.session_factory() as session:
            session.add(schedule)
            await session.commit()
            await session.refresh(schedule)

        logger.info(
            "schedule_created",
            user_id=user_id,
            schedule_id=schedule.id,
            prompt_count=len(schedule.prompts),
            frequency=schedule.schedule_frequency,
        )
        return schedule

    async def schedule_from_report(
        self,
        user_id: str,
        report_id: str,
        frequency: str | None = None,
        now: datetime | None = None,
    ) -> ScheduledPrompt:
        """Turn a completed report's prompts into a recurring schedule.

        Raises:
            NotFoundError: no completed report with that id for this user
            ValidationError: the report has no prompts to schedule
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(Report).where(
                    Report.id == report_id,
                    Report.user_id == user_id,
                    Report.status == "completed",
                )
            )
            report = result.scalar_one_or_none()
            if report is None:
                raise NotFoundError("Report not found")

        prompts = prompts_from_report_data(report.report_data)
        if not prompts:
            raise ValidationError("Report has no prompts to schedule")

        platforms = report.platforms or {}
        ai_models = [model for key, model in PLATFORM_MODELS.items() if platforms.get(key)]
        if not ai_models:
            ai_models = ["chatgpt"]

        return await self.store_prompts(
            user_id,
            brand_name=report.brand_name,
            brand_url=report.brand_url,
            prompts=prompts,
            ai_models=ai_models,
            brand_id=report.brand_id,
            search_scope=report.search_scope,
            location=report.location,
            language=report.language,
            frequency=frequency,
            now=now,
        )

    async def list_for_user(self, user_id: str, is_active: bool | None = None) -> list[ScheduledPrompt]:
        """User's schedules, newest first."""
        stmt = select(ScheduledPrompt).where(ScheduledPrompt.user_id == user_id)
        if is_active is not None:
            stmt = stmt.where(ScheduledPrompt.is_active == is_active)
        stmt = stmt.order_by(ScheduledPrompt.created_at.desc())

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_due(self, now: datetime | None = None) -> list[ScheduledPrompt]:
        """Active schedules whose next_run is unset or not in the future.

        Ordered by next_run with unset values first, then created_at.
        """
        now = as_utc(now or datetime.now(UTC))
        stmt = (
            select(ScheduledPrompt)
            .where(
                ScheduledPrompt.is_active.is_(True),
                or_(ScheduledPrompt.next_run.is_(None), ScheduledPrompt.next_run <= now),
            )
            .order_by(ScheduledPrompt.next_run.asc().nulls_first(), ScheduledPrompt.created_at.asc())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def record_run(
        self,
        schedule_id: str,
        completed_at: datetime | None = None,
        report_id: str | None = None,
    ) -> ScheduledPrompt:
        """Mark a run complete and push next_run forward from the completion time.

        Raises:
            NotFoundError: unknown schedule id
        """
        last_run = as_utc(completed_at or datetime.now(UTC))

        async with self.session_factory() as session:
            schedule = await session.get(ScheduledPrompt, schedule_id)
            if schedule is None:
                raise NotFoundError("Scheduled prompt not found")

            schedule.last_run = last_run
            schedule.next_run = compute_next_run(last_run, schedule.schedule_frequency)
            if report_id:
                schedule.last_report_id = report_id

            await session.commit()
            await session.refresh(schedule)

        logger.info(
            "schedule_run_recorded",
            schedule_id=schedule_id,
            last_run=last_run.isoformat(),
            next_run=as_utc(schedule.next_run).isoformat(),
            report_id=report_id,
        )
        return schedule

    async def _get_owned(self, session: AsyncSession, user_id: str, schedule_id: str) -> ScheduledPrompt:
        schedule = await session.get(ScheduledPrompt, schedule_id)
        if schedule is None:
            raise NotFoundError("Scheduled prompt not found")
        if schedule.user_id != user_id:
            raise PermissionDeniedError("Not authorized to modify this scheduled prompt")
        return schedule

    async def get_for_user(self, user_id: str, schedule_id: str) -> ScheduledPrompt:
        async with self.session_factory() as session:
            return await self._get_owned(session, user_id, schedule_id)

    async def update(
        self,
        user_id: str,
        schedule_id: str,
        *,
        prompts: list | None = None,
        ai_models: list | None = None,
        frequency: str | None = None,
        is_active: bool | None = None,
    ) -> ScheduledPrompt:
        """Patch a schedule; replaced prompts are resequenced from 0.

        A frequency change re-derives next_run from last_run when the schedule
        has run before.
        """
        async with self.session_factory() as session:
            schedule = await self._get_owned(session, user_id, schedule_id)

            if prompts is not None:
                schedule.prompts = resequence_prompts([_normalize_prompt(p) for p in prompts])
            if ai_models is not None:
                schedule.ai_models = list(ai_models)
            if frequency is not None and frequency != schedule.schedule_frequency:
                schedule.schedule_frequency = frequency
                if schedule.last_run is not None:
                    schedule.next_run = compute_next_run(schedule.last_run, frequency)
            if is_active is not None:
                schedule.is_active = is_active

            await session.commit()
            await session.refresh(schedule)
            return schedule

    async def toggle(self, user_id: str, schedule_id: str) -> ScheduledPrompt:
        async with self.session_factory() as session:
            schedule = await self._get_owned(session, user_id, schedule_id)
            schedule.is_active = not schedule.is_active
            await session.commit()
            await session.refresh(schedule)

        logger.info("schedule_toggled", schedule_id=schedule_id, is_active=schedule.is_active)
        return schedule

    async def delete(self, user_id: str, schedule_id: str) -> None:
        async with self.session_factory() as session:
            schedule = await self._get_owned(session, user_id, schedule_id)
            await session.delete(schedule)
            await session.commit()

        logger.info("schedule_deleted", user_id=user_id, schedule_id=schedule_id)
