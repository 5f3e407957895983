"""StripeWebhookEvent model — claimed Stripe event ids."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String

from promptverse.db.base import Base


class StripeWebhookEvent(Base):
    """One row per Stripe event id this service has started processing.

    A redelivered event finds its id already claimed and is skipped. The claim
    is removed again when the handler fails so Stripe's retry is processed.
    """

    __tablename__ = "stripe_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False, default="")
    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
