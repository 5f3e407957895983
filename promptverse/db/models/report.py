"""Report model — a materialized visibility analysis for a brand."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String

from promptverse.db.base import Base, new_id


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (Index("ix_reports_user_created", "user_id", "created_at"),)

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    brand_id = Column(String(32), nullable=True, index=True)
    scheduled_prompt_id = Column(String(32), nullable=True, index=True)

    # Brand info
    brand_name = Column(String(255), nullable=False)
    brand_url = Column(String(500), nullable=False)
    favicon = Column(String(500), nullable=True)

    # Search parameters
    search_scope = Column(String(20), nullable=True)  # local, national
    location = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    language = Column(String(50), nullable=False, default="English")

    # {"chatgpt": bool, "perplexity": bool, "googleAiOverviews": bool}
    platforms = Column(JSON, nullable=False, default=dict)

    report_data = Column(JSON, nullable=False, default=list)
    # Computed once when the report is completed, never recalculated
    stats = Column(JSON, nullable=True)

    report_date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    status = Column(String(20), nullable=False, default="completed")  # in-progress, completed, failed
    # {"currentStep", "formData", "step2Data", "lastUpdated"} while in-progress
    progress = Column(JSON, nullable=True)

    is_shared = Column(Boolean, nullable=False, default=False)
    share_token = Column(String(64), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
