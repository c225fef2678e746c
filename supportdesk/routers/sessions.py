from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from supportdesk.database import get_db
from supportdesk.models import Agent, ChatSession
from supportdesk.schemas.session import (
    EndSessionRequest,
    EscalateRequest,
    EscalationResponse,
    FeedbackRequest,
    SessionResponse,
    TransferRequest,
)
from supportdesk.services import session_service
from supportdesk.services.agent_matcher import AgentCriteria
from supportdesk.services.escalation_service import EscalationVerdict, higher_priority
from supportdesk.services.result import Result
from supportdesk.services.state_machine import session_state

router = APIRouter(prefix="/sessions")


def _raise_for(result: Result) -> None:
    if not result.ok:
        raise HTTPException(status_code=result.status_code(), detail=result.error)


def _get_session_or_404(db: Session, session_id: UUID) -> ChatSession:
    session = session_service.get_session(db, session_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def _get_agent_or_404(db: Session, agent_id: UUID) -> Agent:
    agent = db.query(Agent).filter(Agent.id == agent_id).first()
    if not agent:
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} not found")
    return agent


def to_session_response(session: ChatSession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        organization_id=session.organization_id,
        customer_id=session.customer_id,
        agent_id=session.agent_id,
        state=session_state(session).value,
        priority=session.priority,
        is_active=session.is_active,
        is_bot_session=session.is_bot_session,
        is_resolved=session.is_resolved,
        handover_reason=session.handover_reason,
        handover_at=session.handover_at,
        ended_at=session.ended_at,
        resolution_type=session.resolution_type,
        satisfaction_rating=session.satisfaction_rating,
        total_messages=session.total_messages or 0,
    )


@router.post("/{session_id}/escalate", response_model=EscalationResponse)
def escalate_session(session_id: UUID, request: EscalateRequest, db: Session = Depends(get_db)):
    """Manually escalate a session to a human agent."""
    session = _get_session_or_404(db, session_id)
    priority = request.priority or "normal"

    if request.agent_id:
        agent = _get_agent_or_404(db, request.agent_id)
        result = session_service.handover(db, session, agent, request.reason)
        _raise_for(result)
        result.value.priority = higher_priority(result.value.priority, priority)
        db.commit()
        return EscalationResponse(
            success=True,
            assigned=True,
            state=session_state(result.value).value,
            agent_id=agent.id,
            agent_name=agent.display_name,
            priority=result.value.priority,
            reason=request.reason,
            message="Session escalated successfully",
        )

    verdict = EscalationVerdict(
        triggers=(),
        reason=request.reason,
        priority=priority,
        should_escalate=True,
        reasons=(request.reason,),
    )
    criteria = AgentCriteria(
        department=request.department,
        specialization=request.specialization,
        languages=request.languages,
    )
    result = session_service.escalate(db, session, verdict, criteria=criteria)
    _raise_for(result)
    db.commit()

    outcome = result.value
    return EscalationResponse(
        success=True,
        assigned=outcome.assigned,
        state=outcome.state.value,
        agent_id=outcome.agent_id,
        agent_name=outcome.agent_name,
        priority=session.priority,
        reason=request.reason,
        message="Session escalated successfully" if outcome.assigned else "No agent available, session queued",
    )


@router.post("/{session_id}/transfer", response_model=SessionResponse)
def transfer_session(session_id: UUID, request: TransferRequest, db: Session = Depends(get_db)):
    session = _get_session_or_404(db, session_id)
    agent = _get_agent_or_404(db, request.agent_id)
    result = session_service.transfer(db, session, agent, request.reason)
    _raise_for(result)
    db.commit()
    return to_session_response(result.value)


@router.post("/{session_id}/end", response_model=SessionResponse)
def end_session(session_id: UUID, request: EndSessionRequest, db: Session = Depends(get_db)):
    session = _get_session_or_404(db, session_id)
    result = session_service.end(db, session, request.resolution_type, request.notes)
    _raise_for(result)
    db.commit()
    return to_session_response(result.value)


@router.post("/{session_id}/feedback", response_model=SessionResponse)
def session_feedback(session_id: UUID, request: FeedbackRequest, db: Session = Depends(get_db)):
    session = _get_session_or_404(db, session_id)
    result = session_service.record_feedback(db, session, request.rating, request.feedback)
    _raise_for(result)
    db.commit()
    return to_session_response(result.value)
