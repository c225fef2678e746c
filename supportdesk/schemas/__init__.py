from supportdesk.schemas.escalation import AvailableAgent, EscalationStats
from supportdesk.schemas.inbound import InboundMessage, PipelineResponse
from supportdesk.schemas.session import (
    EndSessionRequest,
    EscalateRequest,
    EscalationResponse,
    FeedbackRequest,
    SessionResponse,
    TransferRequest,
)
from supportdesk.schemas.waha import WahaMessagePayload, WahaWebhookRequest, WahaWebhookResponse

__all__ = [
    "AvailableAgent",
    "EndSessionRequest",
    "EscalateRequest",
    "EscalationResponse",
    "EscalationStats",
    "FeedbackRequest",
    "InboundMessage",
    "PipelineResponse",
    "SessionResponse",
    "TransferRequest",
    "WahaMessagePayload",
    "WahaWebhookRequest",
    "WahaWebhookResponse",
]
