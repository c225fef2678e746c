from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# Error codes shared by the session, escalation and pipeline services.
NOT_FOUND = "not_found"
CAPACITY_EXCEEDED = "capacity_exceeded"
NO_AGENT_AVAILABLE = "no_agent_available"
INVALID_STATE = "invalid_state"
EXTERNAL_SERVICE_FAILURE = "external_service_failure"
VALIDATION_ERROR = "validation_error"

HTTP_STATUS = {
    NOT_FOUND: 404,
    CAPACITY_EXCEEDED: 409,
    INVALID_STATE: 409,
    VALIDATION_ERROR: 422,
    EXTERNAL_SERVICE_FAILURE: 502,
}


@dataclass
class Result(Generic[T]):
    """Outcome of a session operation: a value, or an error with its code."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def status_code(self) -> int:
        """HTTP status for the API boundary; 200 when ok, 400 for unmapped codes."""
        if self.ok:
            return 200
        return HTTP_STATUS.get(self.error_code, 400)
