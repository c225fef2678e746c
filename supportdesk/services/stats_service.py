from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from supportdesk.models import Agent, ChatSession

TIME_RANGES = {
    "24h": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_TIME_RANGE = "7d"


def start_of_range(time_range: str, now: Optional[datetime] = None) -> datetime:
    """Unknown ranges fall back to the last 7 days."""
    now = now or datetime.now(timezone.utc)
    return now - TIME_RANGES.get(time_range, TIME_RANGES[DEFAULT_TIME_RANGE])


def escalation_stats(db: Session, organization_id: UUID, since: datetime) -> dict:
    """Escalations handed to an agent since the given moment."""
    sessions = (
        db.query(ChatSession)
        .filter(
            ChatSession.organization_id == organization_id,
            ChatSession.is_bot_session.is_(False),
            ChatSession.agent_id.isnot(None),
            ChatSession.handover_at >= since,
        )
        .all()
    )

    total = len(sessions)
    by_reason = Counter(session.handover_reason or "unspecified" for session in sessions)
    by_agent_id = Counter(session.agent_id for session in sessions)

    names = {}
    if by_agent_id:
        for agent in db.query(Agent).filter(Agent.id.in_(list(by_agent_id))).all():
            names[agent.id] = agent.display_name or str(agent.id)
    by_agent = {names.get(agent_id, str(agent_id)): count for agent_id, count in by_agent_id.items()}

    resolved = sum(1 for session in sessions if session.is_resolved)
    durations = [
        (session.handover_at - session.started_at).total_seconds()
        for session in sessions
        if session.handover_at and session.started_at
    ]

    return {
        "organization_id": organization_id,
        "total_escalations": total,
        "escalations_by_reason": dict(by_reason),
        "escalations_by_agent": by_agent,
        "resolved_escalations": resolved,
        "resolution_rate": round(resolved / total * 100, 2) if total else 0.0,
        "average_escalation_seconds": round(sum(durations) / len(durations), 1) if durations else None,
    }
