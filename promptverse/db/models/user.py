"""User model — identity, plan, and credit balance."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, DateTime, Integer, String

from promptverse.db.base import Base, new_id


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
        CheckConstraint("credits_used >= 0", name="ck_users_credits_used_non_negative"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=True, index=True)
    role = Column(String(20), nullable=False, default="user")  # user, admin

    # Local login; password_hash is a bcrypt hash
    password_hash = Column(String(255), nullable=True)
    auth_provider = Column(String(20), nullable=False, default="local")
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Credits
    credits = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)

    # Plan: free, starter, pro, agency
    current_plan = Column(String(20), nullable=False, default="free")
    subscription_tier = Column(String(20), nullable=False, default="free")
    allowed_models = Column(JSON, nullable=False, default=lambda: ["chatgpt"])

    # Stripe
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    subscription_status = Column(String(20), nullable=False, default="inactive")  # active, canceled, past_due, inactive
    current_plan_period_end = Column(DateTime(timezone=True), nullable=True)

    # Referrals
    referral_code = Column(String(16), unique=True, nullable=True, index=True)
    referred_by = Column(String(32), nullable=True)
    referral_count = Column(Integer, nullable=False, default=0)

    # One-time survey reward
    survey_completed = Column(Boolean, nullable=False, default=False)
    survey_completed_at = Column(DateTime(timezone=True), nullable=True)
    survey_responses = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
