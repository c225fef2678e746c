import uuid

from sqlalchemy import Boolean, Column, Text
from sqlalchemy.dialects.postgresql import UUID

from supportdesk.database import Base, UTCDateTime


class BotPersonality(Base):
    __tablename__ = "bot_personalities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="active")  # active, inactive
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime)
