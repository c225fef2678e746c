import uuid

from sqlalchemy import Column, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from supportdesk.database import Base, JSONType, UTCDateTime


class Agent(Base):
    __tablename__ = "agents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True))
    display_name = Column(Text)
    status = Column(Text, nullable=False, default="active")  # active, inactive
    availability_status = Column(Text, nullable=False, default="offline")  # online, available, busy, away, offline
    department = Column(Text)
    specialization = Column(JSONType, nullable=False, default=list)
    skills = Column(JSONType, nullable=False, default=list)
    languages = Column(JSONType, nullable=False, default=list)
    max_concurrent_chats = Column(Integer, nullable=False, default=5)
    current_active_chats = Column(Integer, nullable=False, default=0)
    total_handled_chats = Column(Integer, nullable=False, default=0)
    total_resolved_chats = Column(Integer, nullable=False, default=0)
    rating = Column(Numeric(3, 2))
    created_at = Column(UTCDateTime)
    updated_at = Column(UTCDateTime)

    sessions = relationship("ChatSession", back_populates="agent")
