from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from supportdesk.database import get_db
from supportdesk.main import app
from supportdesk.services.bot_responder import BotReply, BotResponder
from supportdesk.services.inbound_pipeline import InboundMessagePipeline, get_pipeline
from supportdesk.services.session_service import handover
from supportdesk.services.waha_service import WahaClient


@pytest.fixture
def pipeline(keyword_lists):
    responder = Mock(spec=BotResponder)
    responder.generate.return_value = BotReply(content="Hello from bot")
    delivery = Mock(spec=WahaClient)
    delivery.send_text.return_value = True
    return InboundMessagePipeline(responder=responder, delivery=delivery, keyword_lists=keyword_lists)


@pytest.fixture
def client(db, pipeline):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def _waha_payload(body="hello", from_me=False, event="message"):
    return {
        "event": event,
        "session": "default",
        "id": "evt_1",
        "payload": {
            "id": {"_serialized": "false_77011234567@c.us_ABC"},
            "from": "77011234567@c.us",
            "to": "77000000000@c.us",
            "body": body,
            "fromMe": from_me,
            "timestamp": 1714560000,
            "_data": {"notifyName": "Aigerim"},
        },
    }


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestMessageEndpoint:
    def test_processes_message(self, client, org_id, make_bot):
        make_bot()

        response = client.post(
            "/message",
            json={"from": "77011234567", "text": "hello", "organization_id": str(org_id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["session_id"] is not None
        assert data["response_sent"] is True
        assert data["response_text"] == "Hello from bot"

    def test_missing_phone_is_422(self, client, org_id):
        response = client.post("/message", json={"text": "hello", "organization_id": str(org_id)})
        assert response.status_code == 422


class TestWahaWebhook:
    def test_processes_message_event(self, client, org_id, make_bot):
        make_bot()

        response = client.post(f"/webhook/waha/{org_id}", json=_waha_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "processed"
        assert data["response_sent"] is True

    def test_ignores_own_messages(self, client, org_id):
        response = client.post(f"/webhook/waha/{org_id}", json=_waha_payload(from_me=True))

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_ignores_other_events(self, client, org_id):
        response = client.post(f"/webhook/waha/{org_id}", json={"event": "session.status", "session": "default"})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_invalid_payload_is_acknowledged(self, client, org_id):
        payload = _waha_payload()
        del payload["payload"]["from"]

        response = client.post(f"/webhook/waha/{org_id}", json=payload)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert response.json()["success"] is False


class TestSessionEndpoints:
    def test_escalate_to_specific_agent(self, client, make_session, make_agent):
        session = make_session()
        agent = make_agent("Dana")

        response = client.post(
            f"/sessions/{session.id}/escalate",
            json={"reason": "Customer asked", "agent_id": str(agent.id), "priority": "high"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["assigned"] is True
        assert data["state"] == "agent_owned"
        assert data["agent_name"] == "Dana"

    def test_escalate_to_full_agent_is_409(self, client, make_session, make_agent):
        session = make_session()
        agent = make_agent("Full", current=5)

        response = client.post(f"/sessions/{session.id}/escalate", json={"agent_id": str(agent.id)})

        assert response.status_code == 409

    def test_escalate_agent_owned_is_409(self, client, db, make_session, make_agent):
        session = make_session()
        handover(db, session, make_agent("Dana"), "r")

        response = client.post(f"/sessions/{session.id}/escalate", json={"reason": "again"})

        assert response.status_code == 409

    def test_escalate_without_agents_queues(self, client, make_session):
        session = make_session()

        response = client.post(f"/sessions/{session.id}/escalate", json={"reason": "Manual"})

        assert response.status_code == 200
        assert response.json()["assigned"] is False
        assert response.json()["state"] == "pending_human"

    def test_unknown_session_is_404(self, client):
        response = client.post(f"/sessions/{uuid4()}/end", json={})
        assert response.status_code == 404

    def test_unknown_agent_is_404(self, client, make_session):
        session = make_session()

        response = client.post(f"/sessions/{session.id}/transfer", json={"agent_id": str(uuid4())})

        assert response.status_code == 404

    def test_transfer(self, client, db, make_session, make_agent):
        session = make_session()
        handover(db, session, make_agent("First"), "r")
        second = make_agent("Second")

        response = client.post(
            f"/sessions/{session.id}/transfer", json={"agent_id": str(second.id), "reason": "language"}
        )

        assert response.status_code == 200
        assert response.json()["agent_id"] == str(second.id)

    def test_end_twice(self, client, make_session):
        session = make_session()

        first = client.post(f"/sessions/{session.id}/end", json={"resolution_type": "solved"})
        second = client.post(f"/sessions/{session.id}/end", json={})

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["state"] == "ended"
        assert second.json()["is_resolved"] is True

    def test_feedback(self, client, make_session):
        session = make_session()

        ok = client.post(f"/sessions/{session.id}/feedback", json={"rating": 4, "feedback": "fine"})
        bad = client.post(f"/sessions/{session.id}/feedback", json={"rating": 9})

        assert ok.status_code == 200
        assert ok.json()["satisfaction_rating"] == 4
        assert bad.status_code == 422


class TestEscalationEndpoints:
    def test_config(self, client, org_id):
        response = client.get(f"/escalation/config/{org_id}")

        assert response.status_code == 200
        assert response.json()["organization_id"] == str(org_id)
        assert "refund" in response.json()["escalation_keywords"]

    def test_available_agents(self, client, org_id, make_agent):
        make_agent("Busy", current=3)
        idle = make_agent("Idle", languages=["en", "kk"])
        make_agent("Offline", availability="offline")

        response = client.get(f"/escalation/agents/{org_id}", params={"languages": ["kk"]})

        assert response.status_code == 200
        assert [agent["id"] for agent in response.json()] == [str(idle.id)]

    def test_stats(self, client, db, org_id, make_session, make_agent):
        started = datetime.now(timezone.utc) - timedelta(minutes=10)
        session = make_session(started_at=started)
        handover(db, session, make_agent("Dana"), "Escalation keyword detected", now=started + timedelta(minutes=2))

        response = client.get(f"/escalation/stats/{org_id}", params={"time_range": "24h"})

        assert response.status_code == 200
        data = response.json()
        assert data["time_range"] == "24h"
        assert data["total_escalations"] == 1
        assert data["escalations_by_reason"] == {"Escalation keyword detected": 1}
        assert data["escalations_by_agent"] == {"Dana": 1}
        assert data["average_escalation_seconds"] == 120.0
