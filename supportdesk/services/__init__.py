from supportdesk.services.customer_service import get_or_create_customer, normalize_phone
from supportdesk.services.escalation_service import (
    EscalationContext,
    EscalationDecisionEngine,
    EscalationTrigger,
    EscalationVerdict,
    IncomingText,
)
from supportdesk.services.message_service import save_message
from supportdesk.services.session_service import (
    EscalationOutcome,
    assign_pending,
    end,
    escalate,
    get_or_create_session,
    handover,
    transfer,
)
from supportdesk.services.state_machine import (
    InvalidTransitionError,
    SessionState,
    can_transition,
    session_state,
    transition,
)
