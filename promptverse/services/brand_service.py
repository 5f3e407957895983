"""BrandService — brand CRUD with cascade delete of the brand's reports and schedules."""

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promptverse.core.exceptions import NotFoundError, ValidationError
from promptverse.db.models.brand import Brand
from promptverse.db.models.prompt_record import PromptResponse, PromptSent
from promptverse.db.models.report import Report
from promptverse.db.models.scheduled_prompt import ScheduledPrompt

logger = structlog.get_logger(__name__)


class BrandService:
    """Service layer for brands. Every query is scoped to the owning user."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def save_brand(
        self,
        user_id: str,
        brand_name: str | None,
        website_url: str | None,
        favicon: str | None = None,
    ) -> Brand:
        """Create a brand; a second brand with the same name for the user is rejected."""
        brand_name = (brand_name or "").strip()
        website_url = (website_url or "").strip()
        if not brand_name or not website_url:
            raise ValidationError("Brand name and website URL are required")

        async with self.session_factory() as session:
            existing = await session.execute(
                select(Brand.id).where(Brand.user_id == user_id, Brand.brand_name == brand_name)
            )
            if existing.scalar_one_or_none() is not None:
                raise ValidationError("Brand already exists")

            brand = Brand(user_id=user_id, brand_name=brand_name, website_url=website_url, favicon=favicon)
            session.add(brand)
            try:
                await session.commit()
            except IntegrityError:
                # Concurrent save of the same name won the unique constraint
                await session.rollback()
                raise ValidationError("Brand already exists")
            await session.refresh(brand)

        logger.info("brand_saved", user_id=user_id, brand_id=brand.id)
        return brand

    async def list_brands(self, user_id: str) -> list[Brand]:
        """Active brands, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Brand)
                .where(Brand.user_id == user_id, Brand.is_active.is_(True))
                .order_by(Brand.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_brand(self, user_id: str, brand_id: str) -> Brand:
        async with self.session_factory() as session:
            result = await session.execute(select(Brand).where(Brand.id == brand_id, Brand.user_id == user_id))
            brand = result.scalar_one_or_none()
        if brand is None:
            raise NotFoundError("Brand not found")
        return brand

    async def delete_brand(self, user_id: str, brand_id: str) -> dict:
        """Delete a brand and the user's reports and schedules for it.

        Returns:
            {"reports": int, "schedules": int} deleted counts
        """
        async with self.session_factory() as session:
            result = await session.execute(select(Brand).where(Brand.id == brand_id, Brand.user_id == user_id))
            brand = result.scalar_one_or_none()
            if brand is None:
                raise NotFoundError("Brand not found")

            report_ids = select(Report.id).where(Report.brand_id == brand_id, Report.user_id == user_id)
            for model in (PromptSent, PromptResponse):
                await session.execute(
                    delete(model)
                    .where(model.report_id.in_(report_ids))
                    .execution_options(synchronize_session=False)
                )

            reports = await session.execute(
                delete(Report).where(Report.brand_id == brand_id, Report.user_id == user_id)
            )
            schedules = await session.execute(
                delete(ScheduledPrompt).where(
                    ScheduledPrompt.brand_id == brand_id,
                    ScheduledPrompt.user_id == user_id,
                )
            )
            await session.delete(brand)
            await session.commit()

        deleted = {"reports": reports.rowcount, "schedules": schedules.rowcount}
        logger.info("brand_deleted", user_id=user_id, brand_id=brand_id, brand_name=brand.brand_name, **deleted)
        return deleted
