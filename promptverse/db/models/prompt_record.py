"""PromptSent / PromptResponse models — what was sent to n8n for a report and what came back."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from promptverse.db.base import Base, new_id


class PromptSent(Base):
    __tablename__ = "prompts_sent"
    __table_args__ = (Index("ix_prompts_sent_report_index", "report_id", "prompt_index"),)

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    report_id = Column(String(32), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)

    # n8n webhook payload
    prompt = Column(Text, nullable=False)
    brand = Column(String(255), nullable=True)
    brand_url = Column(String(500), nullable=True)
    chatgpt = Column(Boolean, nullable=False, default=False)
    perplexity = Column(Boolean, nullable=False, default=False)
    google_ai_overviews = Column(Boolean, nullable=False, default=False)
    location = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    category = Column(String(255), nullable=True)
    prompt_index = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default="sent")  # pending, sent, completed, failed
    sent_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class PromptResponse(Base):
    __tablename__ = "prompt_responses"
    __table_args__ = (Index("ix_prompt_responses_report_index", "report_id", "prompt_index"),)

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    report_id = Column(String(32), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)

    # Raw n8n response, before clubbing into report_data
    prompt = Column(Text, nullable=False)
    category = Column(String(255), nullable=True)
    success = Column(Boolean, nullable=False, default=False)
    prompt_index = Column(Integer, nullable=True)
    status = Column(Integer, nullable=True)  # upstream HTTP status
    response = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)

    received_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
