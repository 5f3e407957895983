"""Billing Pydantic schemas."""

from promptverse.schemas.base import CamelModel


class CheckoutRequest(CamelModel):
    plan_key: str


class TopUpRequest(CamelModel):
    topup_key: str


class CheckoutResponse(CamelModel):
    session_id: str
    url: str | None


class PortalResponse(CamelModel):
    url: str


class SubscriptionInfo(CamelModel):
    id: str
    status: str
    current_period_end: int | None
    cancel_at_period_end: bool


class SubscriptionInfoResponse(CamelModel):
    subscription: SubscriptionInfo | None
