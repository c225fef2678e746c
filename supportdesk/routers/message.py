from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from supportdesk.database import get_db
from supportdesk.schemas.inbound import InboundMessage, PipelineResponse
from supportdesk.services.inbound_pipeline import InboundMessagePipeline, ValidationError, get_pipeline

router = APIRouter()


@router.post("/message", response_model=PipelineResponse)
def handle_message(
    request: InboundMessage,
    db: Session = Depends(get_db),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
):
    """Handle a normalized inbound customer message."""
    try:
        result = pipeline.process(db, request)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return PipelineResponse(
        success=result.error is None,
        session_id=result.session_id,
        message_id=result.message_id,
        response_sent=result.response_sent,
        response_text=result.response_text,
        escalated=result.escalated,
        escalation=result.escalation,
        error=result.error,
    )
