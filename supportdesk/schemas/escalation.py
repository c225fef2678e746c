from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AvailableAgent(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    display_name: Optional[str] = None
    department: Optional[str] = None
    availability_status: str
    current_active_chats: int
    max_concurrent_chats: int
    specialization: list = []
    languages: list = []


class EscalationStats(BaseModel):
    organization_id: UUID
    time_range: str
    total_escalations: int
    escalations_by_reason: dict[str, int]
    escalations_by_agent: dict[str, int]
    resolved_escalations: int
    resolution_rate: float
    average_escalation_seconds: Optional[float] = None
