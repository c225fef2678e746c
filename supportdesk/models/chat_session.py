import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from supportdesk.database import Base, JSONType, UTCDateTime


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    agent_id = Column(UUID(as_uuid=True), ForeignKey("agents.id"))
    bot_personality_id = Column(UUID(as_uuid=True), ForeignKey("bot_personalities.id"))
    channel_config_id = Column(UUID(as_uuid=True), ForeignKey("channel_configs.id"))
    session_token = Column(Text, nullable=False)
    session_type = Column(Text, nullable=False, default="customer_initiated")  # customer_initiated, bot, agent_initiated

    is_active = Column(Boolean, nullable=False, default=True)
    is_bot_session = Column(Boolean, nullable=False, default=True)
    is_resolved = Column(Boolean, nullable=False, default=False)

    started_at = Column(UTCDateTime, nullable=False)
    ended_at = Column(UTCDateTime)
    last_activity_at = Column(UTCDateTime)
    first_response_at = Column(UTCDateTime)
    handover_at = Column(UTCDateTime)
    handover_reason = Column(Text)

    priority = Column(Text, nullable=False, default="normal")  # normal, medium, high
    intent = Column(Text)
    category = Column(Text, default="general")
    sentiment = Column(JSONType)

    total_messages = Column(Integer, nullable=False, default=0)
    customer_messages = Column(Integer, nullable=False, default=0)
    bot_messages = Column(Integer, nullable=False, default=0)
    agent_messages = Column(Integer, nullable=False, default=0)

    satisfaction_rating = Column(Integer)
    feedback_text = Column(Text)
    resolved_at = Column(UTCDateTime)
    resolution_type = Column(Text)
    resolution_notes = Column(Text)

    session_data = Column(JSONType, nullable=False, default=dict)
    session_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime)

    customer = relationship("Customer", back_populates="sessions")
    agent = relationship("Agent", back_populates="sessions")
    messages = relationship("Message", back_populates="session")


# One active customer-initiated session per (organization, customer).
Index(
    "uq_chat_sessions_active_customer",
    ChatSession.organization_id,
    ChatSession.customer_id,
    unique=True,
    postgresql_where=(ChatSession.is_active.is_(True)) & (ChatSession.session_type == "customer_initiated"),
    sqlite_where=(ChatSession.is_active.is_(True)) & (ChatSession.session_type == "customer_initiated"),
)
