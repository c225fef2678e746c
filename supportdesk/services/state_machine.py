from enum import Enum


class SessionState(str, Enum):
    BOT_OWNED = "bot_owned"
    PENDING_HUMAN = "pending_human"
    AGENT_OWNED = "agent_owned"
    ENDED = "ended"


VALID_TRANSITIONS = {
    SessionState.BOT_OWNED: [SessionState.PENDING_HUMAN, SessionState.AGENT_OWNED, SessionState.ENDED],
    SessionState.PENDING_HUMAN: [SessionState.AGENT_OWNED, SessionState.ENDED],
    # AGENT_OWNED -> AGENT_OWNED is a transfer to another agent.
    SessionState.AGENT_OWNED: [SessionState.AGENT_OWNED, SessionState.ENDED],
    SessionState.ENDED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: SessionState, to_state: SessionState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def session_state(session) -> SessionState:
    """Derive the state from the stored flags of a chat session."""
    if not session.is_active:
        return SessionState.ENDED
    if session.agent_id is not None:
        return SessionState.AGENT_OWNED
    if session.is_bot_session:
        return SessionState.BOT_OWNED
    return SessionState.PENDING_HUMAN


def can_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: SessionState, to_state: SessionState) -> SessionState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def park(current_state: SessionState) -> SessionState:
    """Escalation fired but nobody can take the session yet."""
    return transition(current_state, SessionState.PENDING_HUMAN)


def assign_agent(current_state: SessionState) -> SessionState:
    """Session is handed to (or transferred between) human agents."""
    return transition(current_state, SessionState.AGENT_OWNED)


def end(current_state: SessionState) -> SessionState:
    """Session is closed."""
    return transition(current_state, SessionState.ENDED)
