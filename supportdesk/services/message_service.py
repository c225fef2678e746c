from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from supportdesk.models import ChatSession, Message

SENDER_TYPES = ("customer", "bot", "agent", "system")
ORDERING_STEP = timedelta(microseconds=1)


def next_message_timestamp(db: Session, session_id: UUID, now: Optional[datetime] = None) -> datetime:
    """Timestamp strictly after the newest message of the session.

    Callers hold the session row lock, so two writers cannot pick the same
    value even when the clock has not advanced between them.
    """
    now = now or datetime.now(timezone.utc)
    latest = db.query(func.max(Message.created_at)).filter(Message.session_id == session_id).scalar()
    if latest is not None and now <= latest:
        return latest + ORDERING_STEP
    return now


def save_message(
    db: Session,
    session: ChatSession,
    sender_type: str,
    content: str,
    sender_id: Optional[str] = None,
    sender_name: Optional[str] = None,
    message_type: str = "text",
    message_metadata: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Message:
    """Save message to database."""
    if sender_type not in SENDER_TYPES:
        raise ValueError(f"Unknown sender_type: {sender_type}")

    created_at = next_message_timestamp(db, session.id, now=now)
    message = Message(
        organization_id=session.organization_id,
        session_id=session.id,
        sender_type=sender_type,
        sender_id=sender_id,
        sender_name=sender_name,
        message_type=message_type,
        content=content,
        message_metadata=message_metadata or {},
        delivered_at=created_at if sender_type != "customer" else None,
        created_at=created_at,
    )
    db.add(message)
    db.flush()
    return message


def mark_failed(db: Session, message: Message, error: str) -> None:
    """Flag a bot message whose delivery failed."""
    metadata = dict(message.message_metadata or {})
    metadata["failed"] = True
    metadata["failure_reason"] = error
    message.message_metadata = metadata
    message.delivered_at = None
    db.flush()


def list_session_messages(db: Session, session_id: UUID, limit: Optional[int] = None) -> List[Message]:
    query = db.query(Message).filter(Message.session_id == session_id).order_by(Message.created_at.asc())
    if limit:
        query = query.limit(limit)
    return query.all()
