"""Re-export all models so Base.metadata sees them."""

from promptverse.db.models.brand import Brand
from promptverse.db.models.credit_log import CreditLog
from promptverse.db.models.prompt_record import PromptResponse, PromptSent
from promptverse.db.models.report import Report
from promptverse.db.models.scheduled_prompt import ScheduledPrompt
from promptverse.db.models.stripe_event import StripeWebhookEvent
from promptverse.db.models.user import User

__all__ = [
    "Brand",
    "CreditLog",
    "PromptResponse",
    "PromptSent",
    "Report",
    "ScheduledPrompt",
    "StripeWebhookEvent",
    "User",
]
