import json
import logging
from types import SimpleNamespace
from uuid import UUID

from supportdesk.logging_config import JSONFormatter, SessionLoggerAdapter, get_logger


def _record(**extra):
    record = logging.LogRecord("supportdesk.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_formats_message_and_context(self):
        data = json.loads(JSONFormatter().format(_record(context={"session_id": "s1"})))

        assert data["level"] == "INFO"
        assert data["logger"] == "supportdesk.test"
        assert data["message"] == "hello world"
        assert data["context"] == {"session_id": "s1"}

    def test_non_json_values_are_stringified(self):
        data = json.loads(JSONFormatter().format(_record(context={"id": UUID(int=1)})))

        assert data["context"]["id"] == "00000000-0000-0000-0000-000000000001"


class TestSessionLoggerAdapter:
    def test_binds_session_and_customer_ids(self):
        session = SimpleNamespace(id=UUID(int=1), organization_id=UUID(int=2))
        customer = SimpleNamespace(id=UUID(int=3))
        adapter = SessionLoggerAdapter(get_logger("test"), session=session, customer=customer, channel_message_id=None)

        assert adapter.extra == {
            "session_id": str(UUID(int=1)),
            "organization_id": str(UUID(int=2)),
            "customer_id": str(UUID(int=3)),
        }

    def test_merges_fixed_and_call_context(self):
        adapter = SessionLoggerAdapter(get_logger("test"), channel_message_id="wamid.1")

        msg, kwargs = adapter.process("hi", {"context": {"intent": "support"}})

        assert msg == "hi"
        assert kwargs["extra"] == {"context": {"channel_message_id": "wamid.1", "intent": "support"}}

    def test_logger_namespace(self):
        assert get_logger("pipeline").name == "supportdesk.pipeline"
