import uuid

from sqlalchemy import Column, ForeignKey, Index, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from supportdesk.database import Base, JSONType, UTCDateTime


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_session_created", "session_id", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False)
    session_id = Column(UUID(as_uuid=True), ForeignKey("chat_sessions.id"), nullable=False)
    sender_type = Column(Text, nullable=False)  # customer, bot, agent, system
    sender_id = Column(Text)
    sender_name = Column(Text)
    message_type = Column(Text, nullable=False, default="text")
    content = Column(Text, nullable=False)
    message_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    delivered_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, nullable=False)

    session = relationship("ChatSession", back_populates="messages")
