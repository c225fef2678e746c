from enum import Enum
from typing import Optional

from supportdesk.config import KeywordLists, get_keyword_lists


class Intent(str, Enum):
    SUPPORT = "support"
    BILLING_QUESTION = "billing_question"
    PURCHASE_INQUIRY = "purchase_inquiry"
    COMPLIMENT = "compliment"
    GENERAL_INQUIRY = "general_inquiry"
    # Produced by upstream classifiers, never by the keyword heuristic.
    BILLING_DISPUTE = "billing_dispute"
    LEGAL_INQUIRY = "legal_inquiry"
    TECHNICAL_ESCALATION = "technical_escalation"
    COMPLAINT = "complaint"
    REFUND_REQUEST = "refund_request"


COMPLEX_INTENTS = {
    Intent.BILLING_DISPUTE,
    Intent.LEGAL_INQUIRY,
    Intent.TECHNICAL_ESCALATION,
    Intent.COMPLAINT,
    Intent.REFUND_REQUEST,
}

# Checked in order, first match wins.
HEURISTIC_INTENTS = (
    Intent.SUPPORT,
    Intent.BILLING_QUESTION,
    Intent.PURCHASE_INQUIRY,
    Intent.COMPLIMENT,
)


def classify_intent(text: str, keyword_lists: Optional[KeywordLists] = None) -> Intent:
    """Keyword heuristic over the intent_* lists."""
    lists = keyword_lists if keyword_lists is not None else get_keyword_lists()
    lowered = (text or "").lower()
    if not lowered:
        return Intent.GENERAL_INQUIRY

    for intent in HEURISTIC_INTENTS:
        keywords = lists.get(f"intent_{intent.value}", frozenset())
        if any(keyword in lowered for keyword in keywords):
            return intent

    return Intent.GENERAL_INQUIRY


def is_complex_intent(intent: Optional[str]) -> bool:
    if not intent:
        return False
    try:
        return Intent(intent) in COMPLEX_INTENTS
    except ValueError:
        return False


def resolve_intent(text: str, explicit_intent: Optional[str], keyword_lists: Optional[KeywordLists] = None) -> str:
    """Upstream intent wins over the keyword heuristic."""
    if explicit_intent and explicit_intent.strip():
        return explicit_intent.strip().lower()
    return classify_intent(text, keyword_lists).value
