"""Billing routes — Stripe Checkout, top-ups, Customer Portal, subscription info, and webhooks."""

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from promptverse.core.auth import AuthUser, require_auth
from promptverse.core.config import get_settings
from promptverse.core.plans import get_plan_catalog, get_topup_catalog
from promptverse.db.base import get_session_factory
from promptverse.db.models.user import User
from promptverse.middleware.rate_limit import limiter
from promptverse.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PortalResponse,
    SubscriptionInfo,
    SubscriptionInfoResponse,
    TopUpRequest,
)
from promptverse.services import billing_service

logger = structlog.get_logger(__name__)

router = APIRouter()


# ── Helpers ─────────────────────────────────────────────────────────


def _get_stripe() -> None:
    """Configure the stripe module with the secret key."""
    settings = get_settings()
    stripe.api_key = settings.stripe_secret_key


def _redirect_urls() -> tuple[str, str]:
    frontend = get_settings().frontend_url
    return (
        f"{frontend}/profile?session_id={{CHECKOUT_SESSION_ID}}",
        f"{frontend}/profile?canceled=true",
    )


async def _load_user(user_id: str) -> User:
    factory = get_session_factory()
    async with factory() as session:
        user = await session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ── Endpoints ───────────────────────────────────────────────────────


@router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    user: AuthUser = Depends(require_auth),
):
    """Create a subscription Checkout session for a plan."""
    plan = get_plan_catalog().get(body.plan_key)
    if plan is None:
        raise HTTPException(status_code=400, detail="Invalid plan selected")
    if not plan.price_id:
        raise HTTPException(status_code=500, detail="Billing is not configured for this plan")

    success_url, cancel_url = _redirect_urls()
    metadata = {"userId": user.user_id, "planType": plan.key}
    _get_stripe()

    checkout_session = await stripe.checkout.Session.create_async(
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": plan.price_id, "quantity": 1}],
        success_url=success_url,
        cancel_url=cancel_url,
        customer_email=user.email,
        metadata=metadata,
        subscription_data={"metadata": metadata},
    )

    logger.info("checkout_session_created", user_id=user.user_id, plan=plan.key)
    return CheckoutResponse(session_id=checkout_session.id, url=checkout_session.url)


@router.post("/create-topup-session", response_model=CheckoutResponse)
async def create_topup_session(
    body: TopUpRequest,
    user: AuthUser = Depends(require_auth),
):
    """Create a one-time payment Checkout session for a credit pack."""
    topup = get_topup_catalog().get(body.topup_key)
    if topup is None:
        raise HTTPException(status_code=400, detail="Invalid top-up option")
    if not topup.price_id:
        raise HTTPException(status_code=500, detail="Billing is not configured for this top-up option")

    _, cancel_url = _redirect_urls()
    settings = get_settings()
    _get_stripe()

    checkout_session = await stripe.checkout.Session.create_async(
        mode="payment",
        payment_method_types=["card"],
        line_items=[{"price": topup.price_id, "quantity": 1}],
        success_url=f"{settings.frontend_url}/profile?topup=success&credits={topup.credits}",
        cancel_url=cancel_url,
        customer_email=user.email,
        metadata={"userId": user.user_id, "credits": str(topup.credits), "type": "topup"},
    )

    logger.info("topup_session_created", user_id=user.user_id, topup=topup.key)
    return CheckoutResponse(session_id=checkout_session.id, url=checkout_session.url)


@router.post("/create-billing-portal-session", response_model=PortalResponse)
async def create_billing_portal_session(
    user: AuthUser = Depends(require_auth),
):
    """Create a Stripe Customer Portal session and return the URL."""
    db_user = await _load_user(user.user_id)
    if not db_user.stripe_customer_id:
        raise HTTPException(status_code=400, detail="No Stripe customer found")

    settings = get_settings()
    _get_stripe()

    portal_session = await stripe.billing_portal.Session.create_async(
        customer=db_user.stripe_customer_id,
        return_url=f"{settings.frontend_url}/profile",
    )
    return PortalResponse(url=portal_session.url)


@router.get("/subscription-info", response_model=SubscriptionInfoResponse)
async def get_subscription_info(
    user: AuthUser = Depends(require_auth),
):
    """Return the live Stripe subscription for the user, or null."""
    db_user = await _load_user(user.user_id)
    if not db_user.stripe_subscription_id:
        return SubscriptionInfoResponse(subscription=None)

    _get_stripe()
    subscription = await stripe.Subscription.retrieve_async(db_user.stripe_subscription_id)
    return SubscriptionInfoResponse(
        subscription=SubscriptionInfo(
            id=subscription["id"],
            status=subscription["status"],
            current_period_end=subscription.get("current_period_end"),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
        )
    )


@router.post("/webhook")
@limiter.exempt
async def stripe_webhook(request: Request):
    """Handle Stripe webhook events with signature verification."""
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(status_code=503, detail="Stripe webhook endpoint is not configured")
    _get_stripe()

    body = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        event = stripe.Webhook.construct_event(body, sig_header, settings.stripe_webhook_secret)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_id = event["id"]
    event_type = event["type"]

    if not await billing_service.claim_event(event_id, event_type):
        logger.info("stripe_duplicate_event_ignored", event_id=event_id)
        return {"received": True}

    logger.info("stripe_webhook_received", event_id=event_id, event_type=event_type)

    try:
        await billing_service.process_event(event)
    except Exception as e:
        logger.error(
            "stripe_webhook_handler_failed",
            event_id=event_id,
            event_type=event_type,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        # Let Stripe's retry reprocess the event
        await billing_service.release_event(event_id)
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    return {"received": True}
