"""Operation results and error types for the workflow generation state machine.

Recoverable outcomes (illegal transitions, failed guards, exhausted retry
budget) are returned as OperationResult values and never raised. Caller
logic errors, such as submitting a prompt outside IDLE, raise
IllegalOperationError instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from src.workflow_generation.state.models import GenerationState


class FailureKind(str, Enum):
    """Categories of recoverable operation failures.

    Attributes:
        INVALID_TRANSITION: The target state is not a legal successor.
        GUARD_VIOLATION: A precondition of the operation was not met.
        RETRY_EXHAUSTED: The build retry budget is used up; the caller
            should escalate through handle_error.
    """

    INVALID_TRANSITION = "invalid_transition"
    GUARD_VIOLATION = "guard_violation"
    RETRY_EXHAUSTED = "retry_exhausted"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a state machine operation.

    Attributes:
        success: True when the operation fully applied.
        error: Human-readable failure description.
        kind: Failure category, None on success.
        missing_credentials: Names of required credentials that were not
            provided, populated only by start_building.
    """

    success: bool
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    missing_credentials: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls) -> "OperationResult":
        return cls(success=True)

    @classmethod
    def fail(
        cls,
        kind: FailureKind,
        error: str,
        missing_credentials: Sequence[str] = (),
    ) -> "OperationResult":
        return cls(
            success=False,
            error=error,
            kind=kind,
            missing_credentials=tuple(missing_credentials),
        )


class IllegalOperationError(Exception):
    """Raised when an operation is invoked in a state it can never run in.

    This signals a defect in the calling controller rather than a pipeline
    data problem, so it is raised instead of returned.

    Attributes:
        operation: Name of the rejected operation.
        current_state: The state the manager was in.
        message: Human-readable error message.
    """

    def __init__(
        self,
        operation: str,
        current_state: GenerationState,
        message: Optional[str] = None,
    ):
        self.operation = operation
        self.current_state = current_state
        self.message = message or (
            f"{operation} is not permitted in state {current_state.value}"
        )
        super().__init__(self.message)
