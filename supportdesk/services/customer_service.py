from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from supportdesk.logging_config import get_logger
from supportdesk.models import Customer

logger = get_logger("customer_service")

DEFAULT_CUSTOMER_NAME = "WhatsApp User"


def normalize_phone(raw: Optional[str]) -> str:
    """Strip whitespace and the WhatsApp JID suffix ("123@c.us" -> "123")."""
    phone = (raw or "").strip()
    if "@" in phone:
        phone = phone.split("@", 1)[0]
    return phone


def _find_customer(db: Session, organization_id: UUID, phone: str) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.organization_id == organization_id, Customer.phone == phone).first()


def _touch_contact(customer: Customer, now: datetime) -> None:
    customer.last_contact_at = now
    customer.updated_at = now
    customer.customer_metadata = {**(customer.customer_metadata or {}), "last_contact": now.isoformat()}


def get_or_create_customer(
    db: Session,
    organization_id: UUID,
    phone: str,
    name: Optional[str] = None,
    channel: str = "whatsapp",
    now: Optional[datetime] = None,
) -> Tuple[Customer, bool]:
    """Find customer by (organization, phone) or create a new one.

    Returns (customer, created). A concurrent insert of the same pair loses
    on the unique constraint and re-reads the winner.
    """
    now = now or datetime.now(timezone.utc)
    customer = _find_customer(db, organization_id, phone)
    if customer:
        _touch_contact(customer, now)
        db.flush()
        return customer, False

    try:
        with db.begin_nested():
            customer = Customer(
                organization_id=organization_id,
                phone=phone,
                channel=channel,
                channel_user_id=phone,
                name=name or DEFAULT_CUSTOMER_NAME,
                status="active",
                source=channel,
                first_contact_at=now,
                last_contact_at=now,
                customer_metadata={
                    "whatsapp_id": phone,
                    "first_contact": now.isoformat(),
                    "last_contact": now.isoformat(),
                },
                created_at=now,
                updated_at=now,
            )
            db.add(customer)
            db.flush()
    except IntegrityError:
        customer = _find_customer(db, organization_id, phone)
        if customer is None:
            raise
        _touch_contact(customer, now)
        db.flush()
        return customer, False

    logger.info(
        "New customer created",
        extra={"context": {"customer_id": str(customer.id), "organization_id": str(organization_id)}},
    )
    return customer, True
