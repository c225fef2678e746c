"""Inbound customer message pipeline.

One call handles one WhatsApp message end to end:

1. resolve the customer
2. resolve the active session
3. persist the inbound message (committed before anything else runs)
4. evaluate escalation and hand over or park when it fires; a session
   already waiting for a human retries assignment on every message
5. otherwise ask the bot responder for a reply and deliver it

Steps 4 and 5 are best effort. When they fail the committed core stays and
the failure is reported in ``PipelineResult.error``.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from supportdesk.config import KeywordLists, Settings, get_keyword_lists
from supportdesk.config import settings as default_settings
from supportdesk.logging_config import SessionLoggerAdapter, get_logger
from supportdesk.models import ChatSession, Customer
from supportdesk.schemas.inbound import InboundMessage
from supportdesk.services.agent_matcher import AgentAvailabilityMatcher
from supportdesk.services.bot_responder import BotResponder, BotResponderError, HttpBotResponder
from supportdesk.services.customer_service import get_or_create_customer, normalize_phone
from supportdesk.services.escalation_service import (
    EscalationDecisionEngine,
    IncomingText,
    build_escalation_context,
)
from supportdesk.services.intent_service import resolve_intent
from supportdesk.services.message_service import mark_failed
from supportdesk.services.sentiment_service import SentimentKeywordClassifier
from supportdesk.services.session_service import (
    ChannelContext,
    assign_pending,
    escalate,
    get_default_bot_personality,
    get_or_create_session,
    record_bot_failure,
    record_message,
)
from supportdesk.services.state_machine import SessionState, session_state
from supportdesk.services.waha_service import WahaClient

logger = get_logger("inbound_pipeline")

MSG_CONNECTING = "Connecting you with a human agent. Please wait a moment."
MSG_AGENT_ASSIGNED = "You are now connected with {agent_name}. They will reply shortly."


class ValidationError(Exception):
    """Inbound message is missing required fields."""

    pass


@dataclass
class PipelineResult:
    session_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    response_sent: bool = False
    response_text: Optional[str] = None
    escalated: bool = False
    escalation: Optional[dict] = None
    error: Optional[str] = None


class InboundMessagePipeline:
    def __init__(
        self,
        responder: Optional[BotResponder] = None,
        delivery: Optional[WahaClient] = None,
        keyword_lists: Optional[KeywordLists] = None,
        settings: Optional[Settings] = None,
        matcher: Optional[AgentAvailabilityMatcher] = None,
    ):
        self.responder = responder or HttpBotResponder()
        self.delivery = delivery or WahaClient()
        self.keyword_lists = keyword_lists if keyword_lists is not None else get_keyword_lists()
        self.settings = settings or default_settings
        self.matcher = matcher or AgentAvailabilityMatcher()
        self.sentiment = SentimentKeywordClassifier(self.keyword_lists)
        self.decision_engine = EscalationDecisionEngine(self.keyword_lists)

    def process(self, db: Session, inbound: InboundMessage) -> PipelineResult:
        phone = normalize_phone(inbound.from_)
        if not phone:
            raise ValidationError("Sender phone number is required")
        if inbound.organization_id is None:
            raise ValidationError("organization_id is required")

        now = datetime.now(timezone.utc)
        text = inbound.text or ""
        sentiment = self.sentiment.classify(text)
        snapshot = sentiment.as_snapshot(now)
        intent = resolve_intent(text, inbound.intent, self.keyword_lists)

        # Steps 1-3: must succeed, committed together.
        customer, _ = get_or_create_customer(db, inbound.organization_id, phone, name=inbound.customer_name, now=now)
        session, created = get_or_create_session(
            db,
            customer,
            ChannelContext(
                channel="whatsapp",
                session_name=inbound.session_name,
                message_id=inbound.message_id,
                intent=intent,
                sentiment=snapshot,
            ),
            now=now,
        )
        message = record_message(
            db,
            session,
            "customer",
            text,
            sender_id=phone,
            sender_name=customer.name,
            message_metadata={
                "intent": intent,
                "sentiment": snapshot,
                "waha_message_id": inbound.message_id,
                "session_name": inbound.session_name,
                "channel_metadata": inbound.channel_metadata,
            },
            now=now,
        )
        db.commit()

        log = SessionLoggerAdapter(logger, session=session, customer=customer, channel_message_id=inbound.message_id)
        log.info("Inbound message stored", context={"session_created": created, "intent": intent})

        result = PipelineResult(session_id=session.id, message_id=message.id)
        try:
            self._after_store(db, session, customer, inbound, text, intent, result, log)
            db.commit()
        except Exception as e:
            db.rollback()
            log.error(f"Post-processing failed: {e}", exc_info=True)
            result.escalated = False
            result.escalation = None
            result.error = str(e)
        return result

    def _after_store(
        self,
        db: Session,
        session: ChatSession,
        customer: Customer,
        inbound: InboundMessage,
        text: str,
        intent: str,
        result: PipelineResult,
        log: SessionLoggerAdapter,
    ) -> None:
        state = session_state(session)

        # Step 4: escalation
        if self.settings.escalation_enabled and state in (SessionState.BOT_OWNED, SessionState.PENDING_HUMAN):
            context = build_escalation_context(db, session)
            verdict = self.decision_engine.evaluate(session, IncomingText(text=text, intent=intent), context)
            if verdict.should_escalate:
                escalation = escalate(db, session, verdict, matcher=self.matcher)
                if not escalation.ok:
                    log.warning(f"Escalation not applied: {escalation.error}", context={"code": escalation.error_code})
                    return
                outcome = escalation.value
                result.escalated = True
                result.escalation = outcome.as_dict()
                log.info(
                    "Session escalated",
                    context={"assigned": outcome.assigned, "priority": verdict.priority, "reason": verdict.reason},
                )
                if outcome.assigned:
                    ack = MSG_AGENT_ASSIGNED.format(agent_name=outcome.agent_name or "an agent")
                    self._send_reply(db, session, customer, inbound, "system", ack, result, log)
                elif state == SessionState.BOT_OWNED:
                    # Parked sessions were already told once.
                    self._send_reply(db, session, customer, inbound, "system", MSG_CONNECTING, result, log)
                return

        if state == SessionState.PENDING_HUMAN:
            self._retry_assignment(db, session, customer, inbound, result, log)
            return

        # Step 5: bot reply
        if state != SessionState.BOT_OWNED:
            log.info("Session is handled by a human agent, bot stays silent")
            return
        bot = get_default_bot_personality(db, session.organization_id)
        if bot is None:
            log.info("No default bot personality, no automatic reply")
            return

        try:
            reply = self.responder.generate(
                bot.id,
                text,
                {
                    "session_id": str(session.id),
                    "customer_name": customer.name,
                    "intent": intent,
                    "organization_id": str(session.organization_id),
                },
            )
        except BotResponderError as e:
            failures = record_bot_failure(db, session, str(e))
            log.error(f"Bot responder failed: {e}", context={"recorded_failures": failures})
            return

        self._send_reply(
            db,
            session,
            customer,
            inbound,
            "bot",
            reply.content,
            result,
            log,
            metadata={"confidence": reply.confidence, "bot_personality_id": str(bot.id), **(reply.metadata or {})},
        )

    def _retry_assignment(
        self,
        db: Session,
        session: ChatSession,
        customer: Customer,
        inbound: InboundMessage,
        result: PipelineResult,
        log: SessionLoggerAdapter,
    ) -> None:
        """Offer a queued session to agents that became available since it was parked."""
        assignment = assign_pending(db, session, matcher=self.matcher)
        if not assignment.ok:
            log.warning(f"Assignment retry not applied: {assignment.error}", context={"code": assignment.error_code})
            return
        outcome = assignment.value
        if not outcome.assigned:
            log.info("Session still waiting for a human agent")
            return

        result.escalated = True
        result.escalation = outcome.as_dict()
        log.info("Queued session assigned", context={"agent_id": str(outcome.agent_id)})
        ack = MSG_AGENT_ASSIGNED.format(agent_name=outcome.agent_name or "an agent")
        self._send_reply(db, session, customer, inbound, "system", ack, result, log)

    def _send_reply(
        self,
        db: Session,
        session: ChatSession,
        customer: Customer,
        inbound: InboundMessage,
        sender_type: str,
        content: str,
        result: PipelineResult,
        log: SessionLoggerAdapter,
        metadata: Optional[dict] = None,
    ) -> None:
        """Persist an outgoing message, then deliver it over WhatsApp.

        The message is committed first so no row lock is held during the
        WAHA call. A failed delivery is flagged in a follow-up transaction.
        """
        message = record_message(
            db,
            session,
            sender_type,
            content,
            sender_name="Bot" if sender_type == "bot" else "System",
            message_metadata=metadata,
        )
        db.commit()

        sent = self.delivery.send_text(inbound.session_name, customer.phone, content)
        if not sent:
            mark_failed(db, message, "delivery_failed")
            db.commit()
            log.warning("Reply delivery failed", context={"message_id": str(message.id), "sender_type": sender_type})
        result.response_sent = sent
        result.response_text = content


def get_pipeline() -> InboundMessagePipeline:
    """FastAPI dependency with the production collaborators."""
    return InboundMessagePipeline()
