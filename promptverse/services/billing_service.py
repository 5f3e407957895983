"""Stripe webhook event handling — translates billing events into ledger mutations.

Each handler runs in its own DB transaction: the user update and its CreditLog
entry commit together or not at all.
"""

from datetime import UTC, datetime

import stripe
import structlog
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from promptverse.core.exceptions import WebhookMetadataError
from promptverse.core.plans import FREE_MODELS, get_plan, get_plan_catalog, map_stripe_status
from promptverse.db.base import get_session_factory
from promptverse.db.models.stripe_event import StripeWebhookEvent
from promptverse.db.models.user import User
from promptverse.domain.ids import normalize_id
from promptverse.metrics.cloudwatch import emit_business_event
from promptverse.services import ledger

logger = structlog.get_logger(__name__)


def _field(obj, key: str, default=None):
    """Read a key from a Stripe object or plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _from_timestamp(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def _metadata_user_id(obj) -> str | None:
    metadata = _field(obj, "metadata") or {}
    return normalize_id(_field(metadata, "userId"), "metadata.userId")


# ── Idempotency ─────────────────────────────────────────────────────


async def claim_event(event_id: str, event_type: str = "") -> bool:
    """Return True if event is new (claimed). False if duplicate."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            session.add(StripeWebhookEvent(event_id=event_id, event_type=event_type))
            await session.commit()
            return True
        except IntegrityError:
            await session.rollback()
            return False


async def release_event(event_id: str) -> None:
    """Drop a claim so a redelivery of a failed event is processed again."""
    factory = get_session_factory()
    async with factory() as session:
        await session.execute(delete(StripeWebhookEvent).where(StripeWebhookEvent.event_id == event_id))
        await session.commit()


# ── Dispatch ────────────────────────────────────────────────────────


async def process_event(event) -> None:
    """Route a verified Stripe event to its handler. Unknown types are ignored."""
    event_type = event["type"]
    data = event["data"]["object"]

    if event_type == "checkout.session.completed":
        await handle_checkout_completed(data)
    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        await handle_subscription_update(data)
    elif event_type == "customer.subscription.deleted":
        await handle_subscription_deleted(data)
    elif event_type == "invoice.payment_failed":
        await handle_payment_failed(data)
    elif event_type == "invoice.payment_succeeded":
        logger.info("invoice_payment_succeeded", invoice_id=_field(data, "id"), customer_id=_field(data, "customer"))
    else:
        logger.debug("stripe_event_ignored", event_type=event_type)


# ── Handlers ────────────────────────────────────────────────────────


async def handle_checkout_completed(session_data) -> None:
    """Grant credits after a successful subscription or top-up checkout."""
    user_id = _metadata_user_id(session_data)
    if not user_id:
        logger.warning("checkout_completed_missing_user", session_id=_field(session_data, "id"))
        return

    metadata = _field(session_data, "metadata") or {}
    customer_id = _field(session_data, "customer")

    if _field(session_data, "mode") == "subscription":
        await _complete_subscription_checkout(user_id, session_data, metadata, customer_id)
    elif _field(metadata, "type") == "topup":
        await _complete_topup_checkout(user_id, metadata, customer_id)
    else:
        logger.info("checkout_completed_ignored", user_id=user_id, mode=_field(session_data, "mode"))


async def _complete_subscription_checkout(user_id: str, session_data, metadata, customer_id: str | None) -> None:
    plan_key = _field(metadata, "planType")
    plan = get_plan_catalog().get(plan_key)
    if plan is None:
        raise WebhookMetadataError(f"Unknown plan in checkout metadata: {plan_key!r}")

    subscription_id = _field(session_data, "subscription")
    subscription = None
    if subscription_id:
        subscription = await stripe.Subscription.retrieve_async(subscription_id)

    fields = {
        "stripe_subscription_id": _field(subscription, "id", subscription_id),
        "subscription_status": "active",
        "current_plan": plan.key,
        "subscription_tier": plan.key,
        "allowed_models": list(plan.allowed_models),
        "current_plan_period_end": _from_timestamp(_field(subscription, "current_period_end")),
        "credits_used": 0,
    }
    if customer_id:
        fields["stripe_customer_id"] = customer_id

    factory = get_session_factory()
    async with factory() as session:
        balance_after = await ledger.credit(
            session,
            user_id,
            plan.credits,
            type="purchased",
            source="subscription",
            description=f"Subscribed to {plan.key}",
            metadata={"plan": plan.key, "subscriptionId": fields["stripe_subscription_id"]},
            fields=fields,
        )
        await session.commit()

    logger.info("subscription_started", user_id=user_id, plan=plan.key, balance_after=balance_after)
    await emit_business_event("new_subscription", user_id=user_id)


async def _complete_topup_checkout(user_id: str, metadata, customer_id: str | None) -> None:
    try:
        credits = int(_field(metadata, "credits") or 0)
    except (TypeError, ValueError):
        credits = 0

    if credits <= 0:
        logger.warning("topup_without_credits", user_id=user_id, credits=_field(metadata, "credits"))
        return

    fields = {"stripe_customer_id": customer_id} if customer_id else None

    factory = get_session_factory()
    async with factory() as session:
        balance_after = await ledger.credit(
            session,
            user_id,
            credits,
            type="purchased",
            source="purchase",
            description=f"Top-up {credits} credits",
            metadata={"topup": True},
            fields=fields,
        )
        await session.commit()

    logger.info("topup_applied", user_id=user_id, credits=credits, balance_after=balance_after)
    await emit_business_event("credits_topped_up", user_id=user_id)


async def handle_subscription_update(subscription) -> None:
    """Reset the balance to the plan grant (not additive) and sync plan fields."""
    user_id = _metadata_user_id(subscription)
    if not user_id:
        logger.warning("subscription_update_missing_user", subscription_id=_field(subscription, "id"))
        return

    metadata = _field(subscription, "metadata") or {}
    plan_key = _field(metadata, "planType") or "free"
    plan = get_plan(plan_key)
    if plan is None:
        raise WebhookMetadataError(f"Unknown plan in subscription metadata: {plan_key!r}")

    fields = {
        "subscription_status": map_stripe_status(_field(subscription, "status")),
        "current_plan": plan.key,
        "subscription_tier": plan.key,
        "allowed_models": list(plan.allowed_models),
        "credits_used": 0,
        "current_plan_period_end": _from_timestamp(_field(subscription, "current_period_end")),
    }
    if _field(subscription, "id"):
        fields["stripe_subscription_id"] = _field(subscription, "id")

    factory = get_session_factory()
    async with factory() as session:
        await ledger.overwrite(
            session,
            user_id,
            plan.credits,
            source="subscription_update",
            description=f"Plan set to {plan.key}",
            metadata={"plan": plan.key, "status": _field(subscription, "status")},
            fields=fields,
        )
        await session.commit()

    logger.info("subscription_synced", user_id=user_id, plan=plan.key, status=fields["subscription_status"])


async def handle_subscription_deleted(subscription) -> None:
    """Drop the user back to the free tier with zero credits."""
    user_id = _metadata_user_id(subscription)
    if not user_id:
        logger.warning("subscription_deleted_missing_user", subscription_id=_field(subscription, "id"))
        return

    fields = {
        "subscription_status": "canceled",
        "current_plan": "free",
        "subscription_tier": "free",
        "allowed_models": list(FREE_MODELS),
        "stripe_subscription_id": None,
        "credits_used": 0,
    }

    factory = get_session_factory()
    async with factory() as session:
        await ledger.overwrite(
            session,
            user_id,
            0,
            source="subscription_cancel",
            description="Subscription canceled",
            metadata={"subscriptionId": _field(subscription, "id")},
            fields=fields,
        )
        await session.commit()

    logger.info("plan_downgraded_to_free", user_id=user_id)
    await emit_business_event("subscription_cancelled", user_id=user_id)


async def handle_payment_failed(invoice) -> None:
    """Mark the subscription past due; credits are left untouched."""
    customer_id = _field(invoice, "customer")
    if not customer_id:
        return

    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            update(User)
            .where(User.stripe_customer_id == customer_id)
            .values(subscription_status="past_due")
            .execution_options(synchronize_session=False)
        )
        await session.commit()

    if result.rowcount == 0:
        logger.warning("payment_failed_unknown_customer", customer_id=customer_id)
        return
    logger.info("payment_failed_marked_past_due", customer_id=customer_id, invoice_id=_field(invoice, "id"))
