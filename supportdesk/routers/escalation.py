from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from supportdesk.database import get_db
from supportdesk.schemas.escalation import AvailableAgent, EscalationStats
from supportdesk.services.agent_matcher import AgentAvailabilityMatcher, AgentCriteria
from supportdesk.services.escalation_service import get_escalation_config
from supportdesk.services.stats_service import DEFAULT_TIME_RANGE, TIME_RANGES, escalation_stats, start_of_range

router = APIRouter(prefix="/escalation")


@router.get("/config/{organization_id}")
def escalation_config(organization_id: UUID):
    return get_escalation_config(organization_id)


@router.get("/agents/{organization_id}", response_model=List[AvailableAgent])
def available_agents(
    organization_id: UUID,
    department: Optional[str] = None,
    specialization: Optional[str] = None,
    languages: List[str] = Query(default=[]),
    db: Session = Depends(get_db),
):
    criteria = AgentCriteria(department=department, specialization=specialization, languages=languages)
    return AgentAvailabilityMatcher().list_available(db, organization_id, criteria)


@router.get("/stats/{organization_id}", response_model=EscalationStats)
def stats(organization_id: UUID, time_range: str = DEFAULT_TIME_RANGE, db: Session = Depends(get_db)):
    if time_range not in TIME_RANGES:
        time_range = DEFAULT_TIME_RANGE
    data = escalation_stats(db, organization_id, start_of_range(time_range))
    return EscalationStats(time_range=time_range, **data)
