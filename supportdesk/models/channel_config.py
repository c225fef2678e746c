import uuid

from sqlalchemy import Boolean, Column, Text
from sqlalchemy.dialects.postgresql import UUID

from supportdesk.database import Base, JSONType, UTCDateTime


class ChannelConfig(Base):
    __tablename__ = "channel_configs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    channel = Column(Text, nullable=False)  # whatsapp, telegram, webchat
    channel_identifier = Column(Text)
    name = Column(Text)
    config = Column(JSONType, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime)
