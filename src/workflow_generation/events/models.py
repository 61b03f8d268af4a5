"""Transition event models for state machine observability.

This module defines the data models passed to transition observers:
- EventType: Enum of the kinds of events the state machine reports
- TransitionEvent: Structured record of a single transition attempt

One event is reported for every transition attempt, successful or not,
so observers see a complete, ordered account of the pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from src.workflow_generation.state.models import GenerationState


class EventType(str, Enum):
    """Kinds of events reported by the state machine.

    Attributes:
        TRANSITION: A table-checked transition was applied.
        REJECTED: A transition attempt was refused; state is unchanged.
        ERROR: handle_error forced the pipeline into ERROR_HANDLING.
        RESET: The execution state was reinitialized to IDLE.
    """

    TRANSITION = "transition"
    REJECTED = "rejected"
    ERROR = "error"
    RESET = "reset"


class TransitionEvent(BaseModel):
    """Structured record of a transition attempt.

    Attributes:
        event_type: The kind of event.
        from_state: State before the attempt.
        to_state: Requested (or entered) state.
        success: Whether the state changed.
        reason: Reason recorded in the state history, if any.
        error: Failure description for rejected attempts.
        session_id: Identifier of the owning wizard session, if known.
        timestamp: When the attempt happened (UTC timezone).

    Example:
        >>> event = TransitionEvent(
        ...     event_type=EventType.TRANSITION,
        ...     from_state=GenerationState.IDLE,
        ...     to_state=GenerationState.PROMPT_RECEIVED,
        ...     success=True,
        ...     reason="User prompt received",
        ... )
    """

    event_type: EventType
    from_state: GenerationState
    to_state: GenerationState
    success: bool
    reason: Optional[str] = None
    error: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the attempt happened (UTC timezone)",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert the event to a flat dictionary for structured logging.

        Returns:
            Dict[str, Any]: Flat representation with enum values unwrapped
            and the timestamp in ISO format.
        """
        return {
            "event_type": self.event_type.value,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "success": self.success,
            "reason": self.reason,
            "error": self.error,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
        }
