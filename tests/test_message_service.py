from datetime import datetime, timedelta, timezone

import pytest

from supportdesk.services.message_service import (
    ORDERING_STEP,
    list_session_messages,
    mark_failed,
    next_message_timestamp,
    save_message,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestMessageOrdering:
    def test_same_instant_messages_are_strictly_ordered(self, db, make_session):
        session = make_session()

        first = save_message(db, session, "customer", "hi", now=NOW)
        second = save_message(db, session, "bot", "hello", now=NOW)
        third = save_message(db, session, "bot", "how can I help?", now=NOW)

        assert first.created_at == NOW
        assert second.created_at == NOW + ORDERING_STEP
        assert third.created_at == NOW + 2 * ORDERING_STEP
        assert [m.content for m in list_session_messages(db, session.id)] == ["hi", "hello", "how can I help?"]

    def test_clock_going_backwards(self, db, make_session):
        session = make_session()
        save_message(db, session, "customer", "hi", now=NOW)

        assert next_message_timestamp(db, session.id, now=NOW - timedelta(seconds=5)) == NOW + ORDERING_STEP

    def test_later_time_is_kept(self, db, make_session):
        session = make_session()
        save_message(db, session, "customer", "hi", now=NOW)

        later = NOW + timedelta(seconds=1)
        assert next_message_timestamp(db, session.id, now=later) == later

    def test_other_sessions_do_not_interfere(self, db, make_session, make_customer):
        one = make_session()
        other = make_session(customer=make_customer(phone="77010000002"))
        save_message(db, one, "customer", "hi", now=NOW)

        assert save_message(db, other, "customer", "hi", now=NOW).created_at == NOW


class TestSaveMessage:
    def test_outgoing_messages_are_delivered_at_creation(self, db, make_session):
        session = make_session()

        inbound = save_message(db, session, "customer", "hi", now=NOW)
        outbound = save_message(db, session, "bot", "hello", now=NOW + timedelta(seconds=1))

        assert inbound.delivered_at is None
        assert outbound.delivered_at == outbound.created_at
        assert outbound.organization_id == session.organization_id

    def test_unknown_sender_type(self, db, make_session):
        with pytest.raises(ValueError):
            save_message(db, make_session(), "robot", "beep")

    def test_limit(self, db, make_session):
        session = make_session()
        for i in range(3):
            save_message(db, session, "customer", f"m{i}", now=NOW)

        assert [m.content for m in list_session_messages(db, session.id, limit=2)] == ["m0", "m1"]


class TestMarkFailed:
    def test_flags_metadata_and_clears_delivery(self, db, make_session):
        session = make_session()
        message = save_message(db, session, "bot", "hello", message_metadata={"confidence": 0.9}, now=NOW)

        mark_failed(db, message, "delivery_failed")

        assert message.content == "hello"
        assert message.delivered_at is None
        assert message.message_metadata == {"confidence": 0.9, "failed": True, "failure_reason": "delivery_failed"}
