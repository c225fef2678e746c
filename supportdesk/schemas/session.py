from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EscalateRequest(BaseModel):
    reason: str = "Manual escalation"
    agent_id: Optional[UUID] = None
    priority: Optional[str] = Field(default=None, pattern="^(normal|medium|high)$")
    department: Optional[str] = None
    specialization: Optional[str] = None
    languages: list[str] = Field(default_factory=list)


class TransferRequest(BaseModel):
    agent_id: UUID
    reason: Optional[str] = None


class EndSessionRequest(BaseModel):
    resolution_type: Optional[str] = None
    notes: Optional[str] = None


class FeedbackRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    feedback: Optional[str] = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    customer_id: UUID
    agent_id: Optional[UUID] = None
    state: str
    priority: str
    is_active: bool
    is_bot_session: bool
    is_resolved: bool
    handover_reason: Optional[str] = None
    handover_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    resolution_type: Optional[str] = None
    satisfaction_rating: Optional[int] = None
    total_messages: int = 0


class EscalationResponse(BaseModel):
    success: bool
    assigned: bool
    state: str
    agent_id: Optional[UUID] = None
    agent_name: Optional[str] = None
    priority: str
    reason: str
    message: Optional[str] = None
