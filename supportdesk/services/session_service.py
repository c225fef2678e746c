"""Chat session lifecycle: creation, handover, escalation, transfer, end.

All functions work inside the caller's transaction: they lock the session
row, mutate, and flush. Committing is left to the request boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from supportdesk.config import settings
from supportdesk.logging_config import get_logger
from supportdesk.models import Agent, BotPersonality, ChannelConfig, ChatSession, Customer, Message
from supportdesk.services.agent_matcher import AgentAvailabilityMatcher, AgentCriteria
from supportdesk.services.escalation_service import (
    BOT_FAILURES_KEY,
    EscalationTrigger,
    EscalationVerdict,
    higher_priority,
)
from supportdesk.services.message_service import save_message
from supportdesk.services.result import (
    CAPACITY_EXCEEDED,
    INVALID_STATE,
    NO_AGENT_AVAILABLE,
    NOT_FOUND,
    VALIDATION_ERROR,
    Result,
)
from supportdesk.services.state_machine import (
    InvalidTransitionError,
    SessionState,
    assign_agent,
    end as end_transition,
    park,
    session_state,
)

logger = get_logger("session_service")

CUSTOMER_INITIATED = "customer_initiated"
MSG_HANDOVER = "Session escalated to human agent: {agent_name}. Reason: {reason}"
MSG_TRANSFER = "Session transferred to agent: {agent_name}. Reason: {reason}"
PENDING_REASON = "Awaiting human agent"
MAX_RECORDED_BOT_FAILURES = 20

COUNTER_COLUMNS = {
    "customer": "customer_messages",
    "bot": "bot_messages",
    "agent": "agent_messages",
}


@dataclass
class ChannelContext:
    channel: str = "whatsapp"
    session_name: Optional[str] = None  # WAHA session used for replies
    message_id: Optional[str] = None
    intent: Optional[str] = None
    sentiment: Optional[dict] = None


@dataclass
class EscalationOutcome:
    escalated: bool
    assigned: bool
    state: SessionState
    agent_id: Optional[UUID] = None
    agent_name: Optional[str] = None
    verdict: Optional[EscalationVerdict] = None
    error_code: Optional[str] = None
    relaxed_criteria: bool = field(default=False)

    def as_dict(self) -> dict:
        return {
            "escalated": self.escalated,
            "assigned": self.assigned,
            "state": self.state.value,
            "agent_id": str(self.agent_id) if self.agent_id else None,
            "agent_name": self.agent_name,
            "error_code": self.error_code,
            "relaxed_criteria": self.relaxed_criteria,
            **({"verdict": self.verdict.as_dict()} if self.verdict else {}),
        }


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _agent_name(agent: Agent) -> str:
    return agent.display_name or str(agent.id)


def get_session(db: Session, session_id: UUID, organization_id: Optional[UUID] = None) -> Optional[ChatSession]:
    query = db.query(ChatSession).filter(ChatSession.id == session_id)
    if organization_id is not None:
        query = query.filter(ChatSession.organization_id == organization_id)
    return query.first()


def lock_session(db: Session, session: ChatSession) -> ChatSession:
    """Take the row lock and reload the row into the identity map."""
    return (
        db.query(ChatSession)
        .filter(ChatSession.id == session.id)
        .with_for_update()
        .populate_existing()
        .one()
    )


def get_default_bot_personality(db: Session, organization_id: UUID) -> Optional[BotPersonality]:
    return (
        db.query(BotPersonality)
        .filter(
            BotPersonality.organization_id == organization_id,
            BotPersonality.status == "active",
            BotPersonality.is_default.is_(True),
        )
        .first()
    )


def resolve_channel_config(db: Session, organization_id: UUID, channel: str = "whatsapp") -> ChannelConfig:
    """Channel config for the org: exact channel, any active one, or a new default."""
    config = (
        db.query(ChannelConfig)
        .filter(
            ChannelConfig.organization_id == organization_id,
            ChannelConfig.channel == channel,
            ChannelConfig.is_active.is_(True),
        )
        .first()
    )
    if config is None:
        config = (
            db.query(ChannelConfig)
            .filter(ChannelConfig.organization_id == organization_id, ChannelConfig.is_active.is_(True))
            .first()
        )
    if config is None:
        config = ChannelConfig(
            organization_id=organization_id,
            channel=channel,
            channel_identifier=f"{channel}_{organization_id}",
            name=f"Default {channel} config",
            config={},
            is_active=True,
            created_at=datetime.now(timezone.utc),
        )
        db.add(config)
        db.flush()
    return config


def _find_active_session(db: Session, organization_id: UUID, customer_id: UUID) -> Optional[ChatSession]:
    return (
        db.query(ChatSession)
        .filter(
            ChatSession.organization_id == organization_id,
            ChatSession.customer_id == customer_id,
            ChatSession.is_active.is_(True),
            ChatSession.session_type == CUSTOMER_INITIATED,
        )
        .first()
    )


def get_or_create_session(
    db: Session,
    customer: Customer,
    channel_context: Optional[ChannelContext] = None,
    now: Optional[datetime] = None,
) -> Tuple[ChatSession, bool]:
    """Reuse the active customer-initiated session or open a new one.

    New sessions start bot-owned when the organization has a default bot
    personality, otherwise pending a human.
    """
    now = _now(now)
    channel_context = channel_context or ChannelContext()

    existing = _find_active_session(db, customer.organization_id, customer.id)
    if existing:
        return existing, False

    bot = get_default_bot_personality(db, customer.organization_id)
    config = resolve_channel_config(db, customer.organization_id, channel_context.channel)

    try:
        with db.begin_nested():
            session = ChatSession(
                organization_id=customer.organization_id,
                customer_id=customer.id,
                agent_id=None,
                bot_personality_id=bot.id if bot else None,
                channel_config_id=config.id,
                session_token=f"sess_{uuid4()}",
                session_type=CUSTOMER_INITIATED,
                is_active=True,
                is_bot_session=bot is not None,
                is_resolved=False,
                started_at=now,
                last_activity_at=now,
                priority="normal",
                intent=channel_context.intent,
                category="general",
                sentiment=channel_context.sentiment,
                session_data={
                    "platform": channel_context.channel,
                    "phone_number": customer.phone,
                    "session_name": channel_context.session_name,
                    "message_id": channel_context.message_id,
                },
                session_metadata={
                    "source": f"{channel_context.channel}_webhook",
                    "created_via": "automatic",
                    "bot_personality_id": str(bot.id) if bot else None,
                    "session_name": channel_context.session_name,
                },
                created_at=now,
                updated_at=now,
            )
            db.add(session)
            db.flush()
    except IntegrityError:
        session = _find_active_session(db, customer.organization_id, customer.id)
        if session is None:
            raise
        return session, False

    logger.info(
        "New chat session created",
        extra={
            "context": {
                "session_id": str(session.id),
                "customer_id": str(customer.id),
                "state": session_state(session).value,
            }
        },
    )
    return session, True


def touch_counters(db: Session, session: ChatSession, sender_type: str, now: Optional[datetime] = None) -> None:
    """Increment message counters in SQL and refresh activity timestamps."""
    now = _now(now)
    session.total_messages = ChatSession.total_messages + 1
    column = COUNTER_COLUMNS.get(sender_type)
    if column:
        setattr(session, column, getattr(ChatSession, column) + 1)
    if sender_type in ("bot", "agent") and session.first_response_at is None:
        session.first_response_at = now
    session.last_activity_at = now
    session.updated_at = now
    db.flush()


def record_message(
    db: Session,
    session: ChatSession,
    sender_type: str,
    content: str,
    sender_id: Optional[str] = None,
    sender_name: Optional[str] = None,
    message_metadata: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Message:
    """Persist a message and bump the session counters under the row lock."""
    session = lock_session(db, session)
    message = save_message(
        db,
        session,
        sender_type=sender_type,
        content=content,
        sender_id=sender_id,
        sender_name=sender_name,
        message_metadata=message_metadata,
        now=now,
    )
    touch_counters(db, session, sender_type, now=message.created_at)
    return message


def reserve_agent_slot(db: Session, agent: Agent) -> bool:
    """Conditionally take one chat slot; False when the agent is full."""
    result = db.execute(
        update(Agent)
        .where(Agent.id == agent.id, Agent.current_active_chats < Agent.max_concurrent_chats)
        .values(
            current_active_chats=Agent.current_active_chats + 1,
            total_handled_chats=Agent.total_handled_chats + 1,
        )
        .execution_options(synchronize_session=False)
    )
    db.expire(agent, ["current_active_chats", "total_handled_chats"])
    return result.rowcount == 1


def release_agent_slot(db: Session, agent_id: UUID, resolved: bool = False) -> None:
    """Give a chat slot back, never going below zero."""
    db.execute(
        update(Agent)
        .where(Agent.id == agent_id, Agent.current_active_chats > 0)
        .values(current_active_chats=Agent.current_active_chats - 1)
        .execution_options(synchronize_session=False)
    )
    if resolved:
        db.execute(
            update(Agent)
            .where(Agent.id == agent_id)
            .values(total_resolved_chats=Agent.total_resolved_chats + 1)
            .execution_options(synchronize_session=False)
        )
    agent = db.get(Agent, agent_id)
    if agent is not None:
        db.expire(agent, ["current_active_chats", "total_resolved_chats"])


def _system_message(db: Session, session: ChatSession, text: str, metadata: dict, now: datetime) -> Message:
    message = save_message(
        db,
        session,
        sender_type="system",
        content=text,
        sender_name="System",
        message_metadata=metadata,
        now=now,
    )
    touch_counters(db, session, "system", now=message.created_at)
    return message


def handover(
    db: Session,
    session: ChatSession,
    agent: Optional[Agent],
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Result[ChatSession]:
    """Atomic BOT_OWNED/PENDING_HUMAN -> AGENT_OWNED."""
    now = _now(now)
    session = lock_session(db, session)
    state = session_state(session)

    if state == SessionState.AGENT_OWNED:
        return Result.failure("Session is already handled by a human agent", INVALID_STATE)
    try:
        assign_agent(state)
    except InvalidTransitionError as e:
        return Result.failure(str(e), INVALID_STATE)

    if agent is None or agent.organization_id != session.organization_id:
        return Result.failure("Agent not found", NOT_FOUND)

    if not reserve_agent_slot(db, agent):
        logger.info(
            "Handover rejected, agent at capacity",
            extra={"context": {"session_id": str(session.id), "agent_id": str(agent.id)}},
        )
        return Result.failure(f"Agent {agent.id} is at capacity", CAPACITY_EXCEEDED)

    session.agent_id = agent.id
    session.is_bot_session = False
    session.handover_at = now
    session.handover_reason = reason
    db.flush()

    _system_message(
        db,
        session,
        MSG_HANDOVER.format(agent_name=_agent_name(agent), reason=reason or "not specified"),
        {
            "escalation": True,
            "agent_id": str(agent.id),
            "reason": reason,
            "escalated_at": now.isoformat(),
        },
        now,
    )

    logger.info(
        "Session handed over to agent",
        extra={
            "context": {
                "session_id": str(session.id),
                "agent_id": str(agent.id),
                "agent_name": agent.display_name,
                "reason": reason,
                "customer_id": str(session.customer_id),
            }
        },
    )
    return Result.success(session)


def escalate(
    db: Session,
    session: ChatSession,
    verdict: EscalationVerdict,
    criteria: Optional[AgentCriteria] = None,
    matcher: Optional[AgentAvailabilityMatcher] = None,
    now: Optional[datetime] = None,
) -> Result[EscalationOutcome]:
    """Apply a verdict: hand over to the best agent or park as pending."""
    now = _now(now)
    if not verdict.should_escalate:
        return Result.success(
            EscalationOutcome(escalated=False, assigned=False, state=session_state(session), verdict=verdict)
        )

    session = lock_session(db, session)
    state = session_state(session)
    if state in (SessionState.AGENT_OWNED, SessionState.ENDED):
        return Result.failure(f"Cannot escalate session in state {state.value}", INVALID_STATE)

    priority = higher_priority(session.priority, verdict.priority)
    session.priority = priority
    session.session_metadata = {**(session.session_metadata or {}), "escalation": verdict.as_dict()}
    session.last_activity_at = now
    db.flush()

    matcher = matcher or AgentAvailabilityMatcher()
    criteria = criteria or AgentCriteria()
    relaxed = False
    candidates = []
    if settings.auto_assign_agent:
        candidates = matcher.list_available(db, session.organization_id, criteria)
        if not candidates and priority == "high" and criteria != AgentCriteria():
            # High priority takes any eligible agent over waiting for a specialist.
            candidates = matcher.list_available(db, session.organization_id, AgentCriteria())
            relaxed = bool(candidates)

    for agent in candidates:
        result = handover(db, session, agent, verdict.reason, now=now)
        if result.ok:
            return Result.success(
                EscalationOutcome(
                    escalated=True,
                    assigned=True,
                    state=SessionState.AGENT_OWNED,
                    agent_id=agent.id,
                    agent_name=agent.display_name,
                    verdict=verdict,
                    relaxed_criteria=relaxed,
                )
            )
        if result.error_code != CAPACITY_EXCEEDED:
            return Result.failure(result.error, result.error_code)

    if state == SessionState.BOT_OWNED:
        park(state)
        session.is_bot_session = False
    session.updated_at = now
    db.flush()

    logger.warning(
        "No available agent for escalation, session pending human",
        extra={
            "context": {
                "session_id": str(session.id),
                "organization_id": str(session.organization_id),
                "triggers": [trigger.value for trigger in verdict.triggers],
                "priority": priority,
                "reason": verdict.reason,
            }
        },
    )
    return Result.success(
        EscalationOutcome(
            escalated=True,
            assigned=False,
            state=SessionState.PENDING_HUMAN,
            verdict=verdict,
            error_code=NO_AGENT_AVAILABLE,
        )
    )


def assign_pending(
    db: Session,
    session: ChatSession,
    criteria: Optional[AgentCriteria] = None,
    matcher: Optional[AgentAvailabilityMatcher] = None,
    now: Optional[datetime] = None,
) -> Result[EscalationOutcome]:
    """Retry agent assignment for a session waiting in PENDING_HUMAN.

    The stored escalation (priority, reason, triggers) is replayed, so a
    queued session keeps its urgency until an agent takes it.
    """
    session = lock_session(db, session)
    state = session_state(session)
    if state != SessionState.PENDING_HUMAN:
        return Result.failure(f"Session is not waiting for an agent: {state.value}", INVALID_STATE)

    stored = (session.session_metadata or {}).get("escalation") or {}
    known = {trigger.value for trigger in EscalationTrigger}
    reason = stored.get("reason") or session.handover_reason or PENDING_REASON
    verdict = EscalationVerdict(
        triggers=tuple(EscalationTrigger(value) for value in stored.get("triggers") or () if value in known),
        reason=reason,
        priority=session.priority or "normal",
        should_escalate=True,
        reasons=tuple(stored.get("reasons") or (reason,)),
    )
    return escalate(db, session, verdict, criteria=criteria, matcher=matcher, now=now)


def record_bot_failure(db: Session, session: ChatSession, error: str, now: Optional[datetime] = None) -> int:
    """Note a bot responder call that produced no reply. Returns the recorded count."""
    now = _now(now)
    session = lock_session(db, session)
    metadata = dict(session.session_metadata or {})
    failures = list(metadata.get(BOT_FAILURES_KEY) or [])
    failures.append({"at": now.isoformat(), "error": error})
    metadata[BOT_FAILURES_KEY] = failures[-MAX_RECORDED_BOT_FAILURES:]
    session.session_metadata = metadata
    session.updated_at = now
    db.flush()
    return len(metadata[BOT_FAILURES_KEY])


def transfer(
    db: Session,
    session: ChatSession,
    agent: Optional[Agent],
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Result[ChatSession]:
    """Move an agent-owned session to another agent."""
    now = _now(now)
    session = lock_session(db, session)
    state = session_state(session)
    if state != SessionState.AGENT_OWNED:
        return Result.failure(f"Cannot transfer session in state {state.value}", INVALID_STATE)
    if agent is None or agent.organization_id != session.organization_id:
        return Result.failure("Agent not found", NOT_FOUND)
    if agent.id == session.agent_id:
        return Result.failure("Session is already assigned to this agent", INVALID_STATE)

    if not reserve_agent_slot(db, agent):
        return Result.failure(f"Agent {agent.id} is at capacity", CAPACITY_EXCEEDED)

    previous_agent_id = session.agent_id
    release_agent_slot(db, previous_agent_id, resolved=False)

    session.agent_id = agent.id
    session.handover_at = now
    session.handover_reason = reason
    db.flush()

    _system_message(
        db,
        session,
        MSG_TRANSFER.format(agent_name=_agent_name(agent), reason=reason or "not specified"),
        {
            "transfer": True,
            "from_agent_id": str(previous_agent_id),
            "agent_id": str(agent.id),
            "reason": reason,
        },
        now,
    )
    logger.info(
        "Session transferred",
        extra={
            "context": {
                "session_id": str(session.id),
                "from_agent_id": str(previous_agent_id),
                "agent_id": str(agent.id),
            }
        },
    )
    return Result.success(session)


def end(
    db: Session,
    session: ChatSession,
    resolution_type: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Result[ChatSession]:
    """Close the session. Ending an ended session is a no-op."""
    now = _now(now)
    session = lock_session(db, session)
    state = session_state(session)
    if state == SessionState.ENDED:
        return Result.success(session)
    end_transition(state)

    session.is_active = False
    session.ended_at = now
    session.last_activity_at = now
    session.updated_at = now
    if resolution_type:
        session.resolution_type = resolution_type
        session.is_resolved = True
        session.resolved_at = now
    if notes:
        session.resolution_notes = notes
    db.flush()

    if state == SessionState.AGENT_OWNED:
        release_agent_slot(db, session.agent_id, resolved=session.is_resolved)

    logger.info(
        "Session ended",
        extra={
            "context": {
                "session_id": str(session.id),
                "from_state": state.value,
                "resolution_type": resolution_type,
            }
        },
    )
    return Result.success(session)


def record_feedback(
    db: Session, session: ChatSession, rating: int, text: Optional[str] = None
) -> Result[ChatSession]:
    if rating < 1 or rating > 5:
        return Result.failure("Rating must be between 1 and 5", VALIDATION_ERROR)
    session = lock_session(db, session)
    session.satisfaction_rating = rating
    session.feedback_text = text
    session.updated_at = datetime.now(timezone.utc)
    db.flush()
    return Result.success(session)
