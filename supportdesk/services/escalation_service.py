"""Escalation decision engine.

Evaluates an inbound message against five independent triggers and returns
an ``EscalationVerdict``. Evaluation never mutates the session and never
raises: a check that blows up is logged and counted as not fired.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from supportdesk.config import KeywordLists, get_keyword_lists, settings
from supportdesk.logging_config import get_logger
from supportdesk.models import ChatSession, Message
from supportdesk.services.intent_service import is_complex_intent
from supportdesk.services.sentiment_service import count_keyword_hits

logger = get_logger("escalation_service")

DEFAULT_ESCALATION_TIMEOUT_MINUTES = 30
DEFAULT_MAX_FAILED_RESPONSES = 3
DEFAULT_FAILED_RESPONSE_WINDOW_MINUTES = 10
NEGATIVE_HITS_THRESHOLD = 2

ESCALATION_LIST = "escalation"
NEGATIVE_ESCALATION_LIST = "negative_sentiment_escalation"


class EscalationTrigger(str, Enum):
    KEYWORD = "keyword"
    SENTIMENT = "sentiment"
    TIME = "time"
    INTENT = "intent"
    FAILED_RESPONSES = "failed_responses"


TRIGGER_REASONS = {
    EscalationTrigger.KEYWORD: "Escalation keyword detected",
    EscalationTrigger.SENTIMENT: "Negative sentiment detected",
    EscalationTrigger.TIME: "Session timeout reached",
    EscalationTrigger.INTENT: "Complex intent requiring human intervention",
    EscalationTrigger.FAILED_RESPONSES: "Multiple failed bot responses",
}

PRIORITY_MAPPING = {
    "high": [EscalationTrigger.SENTIMENT.value, EscalationTrigger.KEYWORD.value],
    "medium": [EscalationTrigger.INTENT.value],
    "normal": [EscalationTrigger.TIME.value, EscalationTrigger.FAILED_RESPONSES.value],
}

PRIORITY_RANK = {"normal": 0, "medium": 1, "high": 2}

# session_metadata key holding timestamps of failed bot responder calls
BOT_FAILURES_KEY = "bot_failures"


@dataclass(frozen=True)
class IncomingText:
    text: str
    intent: Optional[str] = None


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _non_negative_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


@dataclass
class EscalationContext:
    escalation_timeout_minutes: int = DEFAULT_ESCALATION_TIMEOUT_MINUTES
    max_failed_responses: int = DEFAULT_MAX_FAILED_RESPONSES
    recent_failed_responses: int = 0
    now: Optional[datetime] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EscalationContext":
        """Lenient parse: missing or malformed keys fall back to the defaults."""
        data = data or {}
        now = data.get("now")
        return cls(
            escalation_timeout_minutes=_positive_int(
                data.get("escalation_timeout_minutes"), DEFAULT_ESCALATION_TIMEOUT_MINUTES
            ),
            max_failed_responses=_positive_int(data.get("max_failed_responses"), DEFAULT_MAX_FAILED_RESPONSES),
            recent_failed_responses=_non_negative_int(data.get("recent_failed_responses")),
            now=now if isinstance(now, datetime) else None,
        )


@dataclass(frozen=True)
class EscalationVerdict:
    triggers: Tuple[EscalationTrigger, ...] = ()
    reason: str = ""
    priority: str = "normal"
    should_escalate: bool = False
    reasons: Tuple[str, ...] = field(default=())

    def as_dict(self) -> dict:
        return {
            "should_escalate": self.should_escalate,
            "triggers": [trigger.value for trigger in self.triggers],
            "reason": self.reason,
            "reasons": list(self.reasons),
            "priority": self.priority,
        }


def calculate_priority(triggers) -> str:
    """Keyword/sentiment outrank intent, which outranks time/failed responses."""
    fired = set(triggers)
    if EscalationTrigger.SENTIMENT in fired or EscalationTrigger.KEYWORD in fired:
        return "high"
    if EscalationTrigger.INTENT in fired:
        return "medium"
    return "normal"


def higher_priority(current: Optional[str], new: str) -> str:
    """The more urgent of two priorities. Unknown values rank as normal."""
    if current and PRIORITY_RANK.get(current, 0) > PRIORITY_RANK.get(new, 0):
        return current
    return new


class EscalationDecisionEngine:
    def __init__(self, keyword_lists: Optional[KeywordLists] = None):
        lists = keyword_lists if keyword_lists is not None else get_keyword_lists()
        self.escalation_keywords = lists.get(ESCALATION_LIST, frozenset())
        self.negative_keywords = lists.get(NEGATIVE_ESCALATION_LIST, frozenset())

    def evaluate(
        self,
        session: ChatSession,
        message: IncomingText,
        context: Optional[EscalationContext] = None,
    ) -> EscalationVerdict:
        context = context or EscalationContext()
        now = context.now or datetime.now(timezone.utc)

        checks = (
            (EscalationTrigger.KEYWORD, lambda: self._check_keyword(message)),
            (EscalationTrigger.SENTIMENT, lambda: self._check_sentiment(message)),
            (EscalationTrigger.TIME, lambda: self._check_time(session, context, now)),
            (EscalationTrigger.INTENT, lambda: self._check_intent(message)),
            (EscalationTrigger.FAILED_RESPONSES, lambda: self._check_failed_responses(context)),
        )

        triggers = []
        for trigger, check in checks:
            try:
                fired = check()
            except Exception as e:
                logger.error(
                    f"Escalation check {trigger.value} failed: {e}",
                    extra={"context": {"session_id": str(getattr(session, "id", None))}},
                )
                fired = False
            if fired:
                triggers.append(trigger)

        reasons = tuple(TRIGGER_REASONS[trigger] for trigger in triggers)
        return EscalationVerdict(
            triggers=tuple(triggers),
            # Last fired trigger names the reason; priority uses the precedence table.
            reason=reasons[-1] if reasons else "",
            priority=calculate_priority(triggers),
            should_escalate=bool(triggers),
            reasons=reasons,
        )

    def _check_keyword(self, message: IncomingText) -> bool:
        text = (message.text or "").lower()
        if not text:
            return False
        return any(keyword in text for keyword in self.escalation_keywords)

    def _check_sentiment(self, message: IncomingText) -> bool:
        return count_keyword_hits(message.text, self.negative_keywords) >= NEGATIVE_HITS_THRESHOLD

    def _check_time(self, session: ChatSession, context: EscalationContext, now: datetime) -> bool:
        if session.started_at is None:
            return False
        elapsed_minutes = int((now - session.started_at).total_seconds() // 60)
        return elapsed_minutes >= context.escalation_timeout_minutes

    def _check_intent(self, message: IncomingText) -> bool:
        return is_complex_intent(message.intent)

    def _check_failed_responses(self, context: EscalationContext) -> bool:
        return context.recent_failed_responses >= context.max_failed_responses


def count_recent_failed_responses(
    db: Session,
    session_id: UUID,
    now: Optional[datetime] = None,
    window_minutes: int = DEFAULT_FAILED_RESPONSE_WINDOW_MINUTES,
) -> int:
    """Bot messages in the window flagged metadata.failed == true."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=window_minutes)
    rows = (
        db.query(Message)
        .filter(
            Message.session_id == session_id,
            Message.sender_type == "bot",
            Message.created_at >= cutoff,
        )
        .all()
    )
    return sum(1 for row in rows if (row.message_metadata or {}).get("failed") is True)


def count_recent_bot_failures(
    session: ChatSession,
    now: Optional[datetime] = None,
    window_minutes: int = DEFAULT_FAILED_RESPONSE_WINDOW_MINUTES,
) -> int:
    """Bot responder calls that produced no reply, recorded on the session."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=window_minutes)
    count = 0
    for entry in (session.session_metadata or {}).get(BOT_FAILURES_KEY) or []:
        try:
            failed_at = datetime.fromisoformat(entry["at"])
        except (KeyError, TypeError, ValueError):
            continue
        if failed_at.tzinfo is None:
            failed_at = failed_at.replace(tzinfo=timezone.utc)
        if failed_at >= cutoff:
            count += 1
    return count


def build_escalation_context(
    db: Session,
    session: ChatSession,
    overrides: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> EscalationContext:
    """Context from settings, optional per-call overrides and the message history."""
    now = now or datetime.now(timezone.utc)
    data = {
        "escalation_timeout_minutes": settings.escalation_timeout_minutes,
        "max_failed_responses": settings.max_failed_responses,
    }
    data.update(overrides or {})
    context = EscalationContext.from_mapping(data)
    context.now = now
    window = settings.failed_response_window_minutes
    context.recent_failed_responses = count_recent_failed_responses(
        db, session.id, now=now, window_minutes=window
    ) + count_recent_bot_failures(session, now=now, window_minutes=window)
    return context


def get_escalation_config(organization_id: UUID, keyword_lists: Optional[KeywordLists] = None) -> dict:
    """Effective escalation configuration for an organization."""
    lists = keyword_lists if keyword_lists is not None else get_keyword_lists()
    return {
        "organization_id": str(organization_id),
        "enabled": settings.escalation_enabled,
        "escalation_timeout_minutes": settings.escalation_timeout_minutes,
        "max_failed_responses": settings.max_failed_responses,
        "escalation_keywords": sorted(lists.get(ESCALATION_LIST, frozenset())),
        "negative_sentiment_keywords": sorted(lists.get(NEGATIVE_ESCALATION_LIST, frozenset())),
        "auto_assign_agent": settings.auto_assign_agent,
        "notify_agent": settings.notify_agent,
        "priority_mapping": PRIORITY_MAPPING,
    }
