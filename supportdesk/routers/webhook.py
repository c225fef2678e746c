from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from supportdesk.database import get_db
from supportdesk.logging_config import get_logger
from supportdesk.schemas.inbound import InboundMessage
from supportdesk.schemas.waha import WahaWebhookRequest, WahaWebhookResponse
from supportdesk.services.inbound_pipeline import InboundMessagePipeline, ValidationError, get_pipeline

logger = get_logger("webhook")

router = APIRouter()

MESSAGE_EVENTS = ("message", "message.any")


def to_inbound_message(organization_id: UUID, request: WahaWebhookRequest) -> InboundMessage:
    payload = request.payload
    return InboundMessage(
        from_=payload.from_,
        text=payload.body or "",
        organization_id=organization_id,
        customer_name=payload.sender_name(),
        session_name=request.session,
        message_id=payload.message_id(),
        channel_metadata={
            "waha_event_id": request.id,
            "timestamp": payload.timestamp,
            "has_media": payload.hasMedia,
            "to": payload.to,
        },
    )


@router.post("/webhook/waha/{organization_id}", response_model=WahaWebhookResponse)
def handle_waha_webhook(
    organization_id: UUID,
    request: WahaWebhookRequest,
    db: Session = Depends(get_db),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
):
    """Handle WAHA webhook events. Always answers 200 so WAHA does not retry."""
    if request.event not in MESSAGE_EVENTS or request.payload is None:
        return WahaWebhookResponse(success=True, status="ignored", message=f"Event {request.event} ignored")

    if request.payload.fromMe:
        return WahaWebhookResponse(success=True, status="ignored", message="Own message ignored")

    try:
        result = pipeline.process(db, to_inbound_message(organization_id, request))
    except ValidationError as e:
        logger.warning(f"Invalid WAHA payload: {e}", extra={"context": {"organization_id": str(organization_id)}})
        return WahaWebhookResponse(success=False, status="ignored", message=str(e))
    except Exception as e:
        db.rollback()
        logger.error(
            f"WAHA webhook processing failed: {e}",
            extra={"context": {"organization_id": str(organization_id), "session": request.session}},
            exc_info=True,
        )
        return WahaWebhookResponse(success=False, status="error", message="Internal processing error")

    return WahaWebhookResponse(
        success=result.error is None,
        status="processed",
        message=result.error,
        session_id=str(result.session_id) if result.session_id else None,
        response_sent=result.response_sent,
        escalated=result.escalated,
    )
