import uuid
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from supportdesk.config import load_keyword_lists
from supportdesk.database import Base
from supportdesk.models import Agent, BotPersonality, ChatSession, Customer


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across connections."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    # pysqlite needs explicit BEGIN for SAVEPOINT to work.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def keyword_lists():
    return load_keyword_lists()


@pytest.fixture
def org_id():
    return uuid.uuid4()


@pytest.fixture
def make_agent(db, org_id):
    def _make(name="Agent", current=0, max_chats=5, availability="available", **kwargs):
        agent = Agent(
            organization_id=kwargs.pop("organization_id", org_id),
            display_name=name,
            status=kwargs.pop("status", "active"),
            availability_status=availability,
            current_active_chats=current,
            max_concurrent_chats=max_chats,
            total_handled_chats=0,
            total_resolved_chats=0,
            specialization=kwargs.pop("specialization", []),
            skills=kwargs.pop("skills", []),
            languages=kwargs.pop("languages", ["en"]),
            created_at=datetime.now(timezone.utc),
            **kwargs,
        )
        db.add(agent)
        db.flush()
        return agent

    return _make


@pytest.fixture
def make_bot(db, org_id):
    def _make(is_default=True, status="active"):
        bot = BotPersonality(
            organization_id=org_id,
            name="Helper",
            status=status,
            is_default=is_default,
            created_at=datetime.now(timezone.utc),
        )
        db.add(bot)
        db.flush()
        return bot

    return _make


@pytest.fixture
def make_customer(db, org_id):
    def _make(phone="77010000001", name="Customer"):
        now = datetime.now(timezone.utc)
        customer = Customer(
            organization_id=org_id,
            phone=phone,
            channel="whatsapp",
            name=name,
            status="active",
            customer_metadata={},
            first_contact_at=now,
            last_contact_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(customer)
        db.flush()
        return customer

    return _make


@pytest.fixture
def make_session(db, org_id, make_customer):
    def _make(customer=None, is_bot_session=True, started_at=None, **kwargs):
        customer = customer or make_customer()
        started_at = started_at or datetime.now(timezone.utc)
        session = ChatSession(
            organization_id=org_id,
            customer_id=customer.id,
            session_token=f"sess_{uuid.uuid4()}",
            session_type=kwargs.pop("session_type", "customer_initiated"),
            is_active=kwargs.pop("is_active", True),
            is_bot_session=is_bot_session,
            is_resolved=False,
            started_at=started_at,
            last_activity_at=started_at,
            priority="normal",
            total_messages=0,
            customer_messages=0,
            bot_messages=0,
            agent_messages=0,
            session_data={},
            session_metadata={},
            created_at=started_at,
            **kwargs,
        )
        db.add(session)
        db.flush()
        return session

    return _make
