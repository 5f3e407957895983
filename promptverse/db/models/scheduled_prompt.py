"""ScheduledPrompt model — a recurring analysis definition polled by n8n."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String

from promptverse.db.base import Base, new_id


class ScheduledPrompt(Base):
    __tablename__ = "scheduled_prompts"
    __table_args__ = (
        Index("ix_scheduled_prompts_active_next_run", "is_active", "next_run"),
        Index("ix_scheduled_prompts_brand_next_run", "brand_id", "next_run"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    brand_id = Column(String(32), nullable=True, index=True)

    brand_name = Column(String(255), nullable=False)
    brand_url = Column(String(500), nullable=False)

    # [{"text", "category", "categoryDescription", "promptIndex"}], order is significant
    prompts = Column(JSON, nullable=False, default=list)
    ai_models = Column(JSON, nullable=False, default=list)

    search_scope = Column(String(20), nullable=False, default="global")  # global, local, national
    location = Column(String(255), nullable=True)
    language = Column(String(50), nullable=False, default="English")

    is_active = Column(Boolean, nullable=False, default=True)
    schedule_frequency = Column(String(20), nullable=False, default="daily")  # daily, weekly, monthly
    last_run = Column(DateTime(timezone=True), nullable=True)
    last_report_id = Column(String(32), nullable=True)
    next_run = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
