import uuid

from sqlalchemy import Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from supportdesk.database import Base, JSONType, UTCDateTime


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("organization_id", "phone", name="uq_customers_org_phone"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    phone = Column(Text, nullable=False)
    channel = Column(Text, default="whatsapp")
    channel_user_id = Column(Text)
    name = Column(Text)
    status = Column(Text, nullable=False, default="active")  # active, blocked
    source = Column(Text)
    first_contact_at = Column(UTCDateTime)
    last_contact_at = Column(UTCDateTime)
    customer_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime)

    sessions = relationship("ChatSession", back_populates="customer")
