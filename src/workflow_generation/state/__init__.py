"""Workflow generation state models and results.

This package defines the pipeline states, the transition table, the
execution state aggregate, operation results, and the wizard step mapping.

The state manager itself lives in src.workflow_generation.state.machine;
it is not re-exported here because it depends on the events package,
which in turn depends on these models.
"""

from src.workflow_generation.state.models import (
    ALLOWED_TRANSITIONS,
    MAX_RETRIES,
    TERMINAL_STATES,
    ClarifyingQuestion,
    ExecutionState,
    GenerationState,
    StateHistoryEntry,
    ValidationIssue,
    WorkflowBlueprint,
    allowed_successors,
    is_terminal_state,
    is_valid_transition,
)
from src.workflow_generation.state.results import (
    FailureKind,
    IllegalOperationError,
    OperationResult,
)
from src.workflow_generation.state.wizard import (
    WizardStep,
    map_state_to_wizard_step,
    map_wizard_step_to_state,
)

__all__ = [
    # Models
    "ALLOWED_TRANSITIONS",
    "MAX_RETRIES",
    "TERMINAL_STATES",
    "ClarifyingQuestion",
    "ExecutionState",
    "GenerationState",
    "StateHistoryEntry",
    "ValidationIssue",
    "WorkflowBlueprint",
    "allowed_successors",
    "is_terminal_state",
    "is_valid_transition",
    # Results
    "FailureKind",
    "IllegalOperationError",
    "OperationResult",
    # Wizard mapping
    "WizardStep",
    "map_state_to_wizard_step",
    "map_wizard_step_to_state",
]
