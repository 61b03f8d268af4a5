"""Workflow generation state machine models.

This module defines the data models for the workflow generation state machine:
- GenerationState: Enum of all pipeline states
- ALLOWED_TRANSITIONS: Read-only map of legal successor states
- ClarifyingQuestion, ValidationIssue, WorkflowBlueprint: Pipeline payloads
- StateHistoryEntry: Audit record of a single transition
- ExecutionState: The aggregate owned by WorkflowGenerationStateManager

The pipeline sequences an AI-assisted "describe, clarify, confirm, collect
credentials, build, validate, ready" flow. The models use Pydantic for
validation, consistent with the events and configuration modules.
"""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


MAX_RETRIES = 3


class GenerationState(str, Enum):
    """States of the workflow generation pipeline.

    Exactly one state is active at a time. The string values are shared
    with UI collaborators and must not change.

    Stage Flow:
        idle → prompt_received → clarification_active
        → understanding_confirmed → [credential_collection]
        → workflow_building ↔ workflow_validation → workflow_ready

    WORKFLOW_READY is terminal. ERROR_HANDLING is reachable from any state
    through handle_error and can only exit to CLARIFICATION_ACTIVE (resume)
    or IDLE (full reset).
    """

    IDLE = "STATE_0_IDLE"
    PROMPT_RECEIVED = "STATE_1_USER_PROMPT_RECEIVED"
    CLARIFICATION_ACTIVE = "STATE_2_CLARIFICATION_ACTIVE"
    UNDERSTANDING_CONFIRMED = "STATE_3_UNDERSTANDING_CONFIRMED"
    CREDENTIAL_COLLECTION = "STATE_4_CREDENTIAL_COLLECTION"
    WORKFLOW_BUILDING = "STATE_5_WORKFLOW_BUILDING"
    WORKFLOW_VALIDATION = "STATE_6_WORKFLOW_VALIDATION"
    WORKFLOW_READY = "STATE_7_WORKFLOW_READY"
    ERROR_HANDLING = "STATE_ERROR_HANDLING"


# Legal successor states
#
# Built once at import time and exposed read-only. Deviations from the
# linear pipeline order:
# - CLARIFICATION_ACTIVE loops on itself for repeated edits before confirmation
# - UNDERSTANDING_CONFIRMED may go straight to WORKFLOW_BUILDING when no
#   credentials are required, or back to CLARIFICATION_ACTIVE for edits
# - WORKFLOW_BUILDING may go back to CREDENTIAL_COLLECTION when credentials
#   are discovered mid-build
# - WORKFLOW_VALIDATION may retry (back to WORKFLOW_BUILDING) or fail
#
# ERROR_HANDLING is additionally reachable from every state via
# handle_error, which is applied outside this table.
ALLOWED_TRANSITIONS: Mapping[GenerationState, FrozenSet[GenerationState]] = MappingProxyType(
    {
        GenerationState.IDLE: frozenset({GenerationState.PROMPT_RECEIVED}),
        GenerationState.PROMPT_RECEIVED: frozenset(
            {GenerationState.CLARIFICATION_ACTIVE}
        ),
        GenerationState.CLARIFICATION_ACTIVE: frozenset(
            {
                GenerationState.UNDERSTANDING_CONFIRMED,
                GenerationState.CLARIFICATION_ACTIVE,
            }
        ),
        GenerationState.UNDERSTANDING_CONFIRMED: frozenset(
            {
                GenerationState.CREDENTIAL_COLLECTION,
                GenerationState.CLARIFICATION_ACTIVE,
                GenerationState.WORKFLOW_BUILDING,
            }
        ),
        GenerationState.CREDENTIAL_COLLECTION: frozenset(
            {GenerationState.WORKFLOW_BUILDING}
        ),
        GenerationState.WORKFLOW_BUILDING: frozenset(
            {
                GenerationState.WORKFLOW_VALIDATION,
                GenerationState.CREDENTIAL_COLLECTION,
            }
        ),
        GenerationState.WORKFLOW_VALIDATION: frozenset(
            {
                GenerationState.WORKFLOW_READY,
                GenerationState.WORKFLOW_BUILDING,
                GenerationState.ERROR_HANDLING,
            }
        ),
        GenerationState.WORKFLOW_READY: frozenset(),
        GenerationState.ERROR_HANDLING: frozenset(
            {
                GenerationState.CLARIFICATION_ACTIVE,
                GenerationState.IDLE,
            }
        ),
    }
)

TERMINAL_STATES: FrozenSet[GenerationState] = frozenset(
    {GenerationState.WORKFLOW_READY, GenerationState.ERROR_HANDLING}
)


def is_valid_transition(
    from_state: GenerationState, to_state: GenerationState
) -> bool:
    """Check if a state transition is listed in ALLOWED_TRANSITIONS.

    Args:
        from_state: The current state.
        to_state: The target state.

    Returns:
        bool: True if the transition is valid, False otherwise.

    Example:
        >>> is_valid_transition(GenerationState.IDLE, GenerationState.PROMPT_RECEIVED)
        True
        >>> is_valid_transition(GenerationState.WORKFLOW_READY, GenerationState.IDLE)
        False
    """
    return to_state in ALLOWED_TRANSITIONS.get(from_state, frozenset())


def allowed_successors(state: GenerationState) -> List[GenerationState]:
    """Return the legal successors of a state in declaration order."""
    targets = ALLOWED_TRANSITIONS.get(state, frozenset())
    return [candidate for candidate in GenerationState if candidate in targets]


def is_terminal_state(state: GenerationState) -> bool:
    """Check if a state ends the pipeline.

    WORKFLOW_READY has no successors. ERROR_HANDLING is quasi-terminal:
    it only exits through a restart (clarification or full reset).
    """
    return state in TERMINAL_STATES


class ClarifyingQuestion(BaseModel):
    """A clarifying question generated for the user's prompt.

    Attributes:
        id: Stable identifier used as the key for the matching answer.
        text: The question shown to the user.
        options: Suggested answers, possibly empty for free text.
    """

    id: str = Field(..., min_length=1, description="Question identifier")
    text: str = Field(..., description="Question text")
    options: List[str] = Field(
        default_factory=list,
        description="Suggested answers offered to the user",
    )


class ValidationIssue(BaseModel):
    """A problem found while validating a workflow blueprint.

    Attributes:
        type: Category of the problem (e.g. "missing_node", "bad_edge").
        message: Human-readable description.
        nodeId: Identifier of the offending node, when applicable.
    """

    type: str = Field(..., description="Category of the validation problem")
    message: str = Field(..., description="Human-readable description")
    nodeId: Optional[str] = Field(
        default=None,
        description="Identifier of the offending node",
    )


class WorkflowBlueprint(BaseModel):
    """Generated workflow artifact carried by the pipeline.

    The blueprint content is produced outside the state machine; only the
    presence of a non-empty node list is checked before the workflow can
    be marked ready. Unknown keys produced by the generator are preserved.
    """

    model_config = ConfigDict(extra="allow")

    nodes: Optional[List[Any]] = None
    edges: Optional[List[Any]] = None
    structure: Optional[Any] = None

    def has_nodes(self) -> bool:
        return bool(self.nodes)


class StateHistoryEntry(BaseModel):
    """Audit record of a state entered by the pipeline.

    Attributes:
        state: The state that was entered.
        timestamp: When the state was entered (UTC).
        reason: Optional description of why the transition happened.
    """

    state: GenerationState
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the state was entered (UTC timezone)",
    )
    reason: Optional[str] = None


def _initial_history() -> List[StateHistoryEntry]:
    return [StateHistoryEntry(state=GenerationState.IDLE, reason="Initialized")]


class ExecutionState(BaseModel):
    """Mutable aggregate holding all pipeline data.

    Only WorkflowGenerationStateManager mutates this record; callers receive
    deep copies. Invariants maintained by the manager:
    - current_state equals the state of the last state_history entry
    - state_history always starts with an IDLE entry
    - retry_count stays within 0..MAX_RETRIES and only grows until reset

    Attributes:
        current_state: The active pipeline state.
        user_prompt: The user's workflow description, set once from IDLE.
        clarifying_questions: Latest question round, replaced wholesale.
        clarifying_answers: Answers keyed by question id.
        final_understanding: Confirmed summary required before building.
        credentials_required: Credential names the workflow needs.
        credentials_provided: Credential values keyed by name.
        workflow_blueprint: Generated blueprint, cleared on retry.
        validation_errors: Problems found in the current blueprint.
        retry_count: Number of build retries consumed.
        last_error: Message recorded by the most recent handle_error.
        debug_mode: Whether the owning manager runs with verbose logging.
        state_history: Append-only record of entered states.
    """

    current_state: GenerationState = GenerationState.IDLE
    user_prompt: str = ""
    clarifying_questions: List[ClarifyingQuestion] = Field(default_factory=list)
    clarifying_answers: Dict[str, str] = Field(default_factory=dict)
    final_understanding: str = ""
    credentials_required: List[str] = Field(default_factory=list)
    credentials_provided: Dict[str, str] = Field(default_factory=dict)
    workflow_blueprint: Optional[WorkflowBlueprint] = None
    validation_errors: List[ValidationIssue] = Field(default_factory=list)
    retry_count: int = Field(default=0, ge=0, le=MAX_RETRIES)
    last_error: Optional[str] = None
    debug_mode: bool = False
    state_history: List[StateHistoryEntry] = Field(default_factory=_initial_history)
