from typing import Any, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class InboundMessage(BaseModel):
    """Channel-agnostic inbound customer message."""

    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[str] = Field(default=None, alias="from", validation_alias=AliasChoices("from", "from_", "phone"))
    text: str = ""
    organization_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    session_name: Optional[str] = None
    message_id: Optional[str] = None
    intent: Optional[str] = None
    channel_metadata: dict[str, Any] = Field(default_factory=dict)


class PipelineResponse(BaseModel):
    success: bool
    session_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    response_sent: bool = False
    response_text: Optional[str] = None
    escalated: bool = False
    escalation: Optional[dict[str, Any]] = None
    error: Optional[str] = None
