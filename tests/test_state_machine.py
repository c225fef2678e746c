from types import SimpleNamespace
from uuid import uuid4

import pytest

from supportdesk.services.state_machine import (
    InvalidTransitionError,
    SessionState,
    assign_agent,
    can_transition,
    end,
    park,
    session_state,
    transition,
)


def _session(is_active=True, agent_id=None, is_bot_session=True):
    return SimpleNamespace(is_active=is_active, agent_id=agent_id, is_bot_session=is_bot_session)


class TestValidTransitions:
    def test_bot_owned_to_pending_human(self):
        assert park(SessionState.BOT_OWNED) == SessionState.PENDING_HUMAN

    def test_bot_owned_to_agent_owned(self):
        assert assign_agent(SessionState.BOT_OWNED) == SessionState.AGENT_OWNED

    def test_pending_human_to_agent_owned(self):
        assert assign_agent(SessionState.PENDING_HUMAN) == SessionState.AGENT_OWNED

    def test_agent_transfer(self):
        assert transition(SessionState.AGENT_OWNED, SessionState.AGENT_OWNED) == SessionState.AGENT_OWNED

    def test_any_live_state_can_end(self):
        for state in (SessionState.BOT_OWNED, SessionState.PENDING_HUMAN, SessionState.AGENT_OWNED):
            assert end(state) == SessionState.ENDED


class TestInvalidTransitions:
    def test_ended_is_terminal(self):
        for state in SessionState:
            assert can_transition(SessionState.ENDED, state) is False

    def test_agent_owned_cannot_go_back_to_bot(self):
        with pytest.raises(InvalidTransitionError):
            transition(SessionState.AGENT_OWNED, SessionState.BOT_OWNED)

    def test_pending_cannot_park_again(self):
        with pytest.raises(InvalidTransitionError):
            park(SessionState.PENDING_HUMAN)

    def test_error_carries_states(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            end(SessionState.ENDED)
        assert exc_info.value.from_state == SessionState.ENDED
        assert "ended -> ended" in str(exc_info.value)


class TestSessionState:
    def test_inactive_is_ended(self):
        assert session_state(_session(is_active=False, agent_id=uuid4())) == SessionState.ENDED

    def test_agent_assigned(self):
        assert session_state(_session(agent_id=uuid4(), is_bot_session=False)) == SessionState.AGENT_OWNED

    def test_bot_session(self):
        assert session_state(_session()) == SessionState.BOT_OWNED

    def test_waiting_for_human(self):
        assert session_state(_session(is_bot_session=False)) == SessionState.PENDING_HUMAN
