"""CreditLog model — append-only record of every credit balance change."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from promptverse.db.base import Base, new_id


class CreditLog(Base):
    __tablename__ = "credit_logs"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # positive = grant, negative = spend
    type = Column(String(20), nullable=False)  # earned, spent, purchased, adjusted
    source = Column(String(50), nullable=False)
    description = Column(String(500), nullable=False, default="")
    details = Column("metadata", JSON, nullable=True)

    # User.credits immediately after this entry was applied
    balance_after = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
