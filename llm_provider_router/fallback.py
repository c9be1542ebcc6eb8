"""Static replies used when no LLM provider can answer."""

from pydantic import BaseModel, Field

BUSY_MESSAGE = "Our system is temporarily busy. A team member will assist you shortly."
TROUBLE_MESSAGE = (
    "I'm having trouble processing your request right now. "
    "Let me connect you with a team member."
)

INTENT_FALLBACKS: dict[str, str] = {
    "order_status": (
        "I can't look up your order right now. A team member will check its "
        "status and get back to you shortly."
    ),
    "returns": (
        "I can't start a return right now. A team member will help you with it shortly."
    ),
    "billing": (
        "I can't access billing details right now. A team member will follow up with you."
    ),
    "product_question": (
        "I can't answer product questions right now. A team member will assist you shortly."
    ),
}


class DegradedReply(BaseModel):
    """Reply sent in place of a completion during a total provider outage."""
    message: str
    intent: str = "error_fallback"
    requires_human_handoff: bool = True
    reason: str = "LLM service unavailable"
    tags: list[str] = Field(default_factory=lambda: ["llm-error"])


def degraded_reply(intent: str | None = None, fully_open: bool = False) -> DegradedReply:
    """
    Build the static reply for a provider outage.

    Args:
        intent: Caller's detected intent, used to pick a tailored message
        fully_open: Every circuit breaker was open so no provider was called
    """
    if intent and intent in INTENT_FALLBACKS:
        message = INTENT_FALLBACKS[intent]
    elif fully_open:
        message = BUSY_MESSAGE
    else:
        message = TROUBLE_MESSAGE
    return DegradedReply(message=message)
