"""Static plan and top-up catalog.

Credit grants and model policy are fixed here; Stripe price IDs come from settings
so each environment can point at its own Stripe products.
"""

from dataclasses import dataclass

from promptverse.core.config import get_settings

ALL_MODELS = ["chatgpt", "perplexity", "google_ai_overview"]
FREE_MODELS = ["chatgpt"]

PLAN_KEYS = ("free", "starter", "pro", "agency")
SUBSCRIPTION_STATUSES = ("active", "canceled", "past_due", "inactive")

# Stripe subscription statuses that have no direct counterpart on the user record
_STRIPE_STATUS_MAP = {
    "trialing": "active",
    "incomplete": "inactive",
    "incomplete_expired": "inactive",
    "paused": "inactive",
    "unpaid": "past_due",
}


@dataclass(frozen=True)
class Plan:
    key: str
    credits: int
    allowed_models: tuple[str, ...]
    price_id: str = ""


@dataclass(frozen=True)
class TopUp:
    key: str
    credits: int
    price_id: str = ""


FREE_PLAN = Plan(key="free", credits=0, allowed_models=tuple(FREE_MODELS))


def get_plan_catalog() -> dict[str, Plan]:
    """Return the purchasable subscription plans keyed by plan key."""
    settings = get_settings()
    return {
        "starter": Plan("starter", 150, tuple(ALL_MODELS), settings.stripe_price_id_starter),
        "pro": Plan("pro", 500, tuple(ALL_MODELS), settings.stripe_price_id_pro),
        "agency": Plan("agency", 1000, tuple(ALL_MODELS), settings.stripe_price_id_agency),
    }


def get_topup_catalog() -> dict[str, TopUp]:
    """Return the one-time credit packs keyed by top-up key."""
    settings = get_settings()
    return {
        "topup50": TopUp("topup50", 50, settings.stripe_topup_price_id_50),
        "topup100": TopUp("topup100", 100, settings.stripe_topup_price_id_100),
        "topup200": TopUp("topup200", 200, settings.stripe_topup_price_id_200),
    }


def get_plan(plan_key: str | None) -> Plan | None:
    """Look up a plan by key. ``free`` resolves to the free policy row."""
    if plan_key == "free":
        return FREE_PLAN
    if not plan_key:
        return None
    return get_plan_catalog().get(plan_key)


def allowed_models_for(plan_key: str) -> list[str]:
    """Model policy for a plan key; unknown keys fall back to the free policy."""
    plan = get_plan(plan_key)
    return list(plan.allowed_models) if plan else list(FREE_MODELS)


def map_stripe_status(status: str | None) -> str:
    """Map a Stripe subscription status onto the user subscription_status enum."""
    if status in SUBSCRIPTION_STATUSES:
        return status
    return _STRIPE_STATUS_MAP.get(status or "", "inactive")
