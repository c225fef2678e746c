from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from supportdesk.logging_config import get_logger
from supportdesk.models import Agent

logger = get_logger("agent_matcher")

ELIGIBLE_AVAILABILITY = ("available", "online")


@dataclass
class AgentCriteria:
    department: Optional[str] = None
    specialization: Optional[str] = None
    languages: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Optional[dict]) -> "AgentCriteria":
        """Build criteria from loosely typed request/context data."""
        data = data or {}
        languages = data.get("languages") or []
        if isinstance(languages, str):
            languages = [languages]
        return cls(
            department=data.get("department") or None,
            specialization=data.get("specialization") or None,
            languages=[str(lang) for lang in languages if lang],
        )


def _as_set(values: Optional[Iterable]) -> set:
    if not values:
        return set()
    if isinstance(values, str):
        return {values.lower()}
    return {str(value).lower() for value in values}


def _matches(agent: Agent, criteria: AgentCriteria) -> bool:
    if criteria.specialization:
        tags = _as_set(agent.specialization) | _as_set(agent.skills)
        if criteria.specialization.lower() not in tags:
            return False
    if criteria.languages:
        spoken = _as_set(agent.languages)
        if not _as_set(criteria.languages) <= spoken:
            return False
    return True


class AgentAvailabilityMatcher:
    """Greedy least-loaded selection among eligible agents."""

    def list_available(
        self, db: Session, organization_id: UUID, criteria: Optional[AgentCriteria] = None
    ) -> List[Agent]:
        criteria = criteria or AgentCriteria()
        query = db.query(Agent).filter(
            Agent.organization_id == organization_id,
            Agent.status == "active",
            Agent.availability_status.in_(ELIGIBLE_AVAILABILITY),
            Agent.current_active_chats < Agent.max_concurrent_chats,
        )
        if criteria.department:
            query = query.filter(Agent.department == criteria.department)

        candidates = [agent for agent in query.all() if _matches(agent, criteria)]
        candidates.sort(key=lambda agent: (agent.current_active_chats or 0, str(agent.id)))
        return candidates

    def find_available(
        self, db: Session, organization_id: UUID, criteria: Optional[AgentCriteria] = None
    ) -> Optional[Agent]:
        candidates = self.list_available(db, organization_id, criteria)
        if not candidates:
            logger.info(
                "No available agent",
                extra={"context": {"organization_id": str(organization_id), "criteria": vars(criteria or AgentCriteria())}},
            )
            return None
        return candidates[0]
