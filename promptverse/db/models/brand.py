"""Brand model — a website a user tracks."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint

from promptverse.db.base import Base, new_id


class Brand(Base):
    __tablename__ = "brands"
    __table_args__ = (UniqueConstraint("user_id", "brand_name", name="uq_brands_user_brand_name"),)

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    brand_name = Column(String(255), nullable=False)
    website_url = Column(String(500), nullable=False)
    favicon = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
