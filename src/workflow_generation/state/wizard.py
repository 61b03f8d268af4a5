"""Mapping between pipeline states and UI wizard steps.

UI collaborators render a coarser set of wizard steps than the pipeline
has states. The mapping is lossy in both directions and must stay exactly
as defined here for compatibility:

- "questioning" and "refining" both map to CLARIFICATION_ACTIVE
- WORKFLOW_BUILDING and WORKFLOW_VALIDATION both map to "building"
- ERROR_HANDLING maps to "idle"
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from src.workflow_generation.state.models import GenerationState


class WizardStep(str, Enum):
    """Steps of the workflow creation wizard shown by the UI."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    QUESTIONING = "questioning"
    REFINING = "refining"
    CONFIRMATION = "confirmation"
    CREDENTIALS = "credentials"
    BUILDING = "building"
    COMPLETE = "complete"


_STEP_TO_STATE: Mapping[WizardStep, GenerationState] = MappingProxyType(
    {
        WizardStep.IDLE: GenerationState.IDLE,
        WizardStep.ANALYZING: GenerationState.PROMPT_RECEIVED,
        WizardStep.QUESTIONING: GenerationState.CLARIFICATION_ACTIVE,
        WizardStep.REFINING: GenerationState.CLARIFICATION_ACTIVE,
        WizardStep.CONFIRMATION: GenerationState.UNDERSTANDING_CONFIRMED,
        WizardStep.CREDENTIALS: GenerationState.CREDENTIAL_COLLECTION,
        WizardStep.BUILDING: GenerationState.WORKFLOW_BUILDING,
        WizardStep.COMPLETE: GenerationState.WORKFLOW_READY,
    }
)

_STATE_TO_STEP: Mapping[GenerationState, WizardStep] = MappingProxyType(
    {
        GenerationState.IDLE: WizardStep.IDLE,
        GenerationState.PROMPT_RECEIVED: WizardStep.ANALYZING,
        GenerationState.CLARIFICATION_ACTIVE: WizardStep.QUESTIONING,
        GenerationState.UNDERSTANDING_CONFIRMED: WizardStep.CONFIRMATION,
        GenerationState.CREDENTIAL_COLLECTION: WizardStep.CREDENTIALS,
        GenerationState.WORKFLOW_BUILDING: WizardStep.BUILDING,
        # Validation happens during building
        GenerationState.WORKFLOW_VALIDATION: WizardStep.BUILDING,
        GenerationState.WORKFLOW_READY: WizardStep.COMPLETE,
        # Error handling resets the wizard
        GenerationState.ERROR_HANDLING: WizardStep.IDLE,
    }
)


def map_wizard_step_to_state(step: Union[WizardStep, str]) -> GenerationState:
    """Map a wizard step to its pipeline state.

    Unknown step names map to IDLE.

    Args:
        step: A WizardStep or its string value.

    Returns:
        GenerationState: The corresponding pipeline state.
    """
    try:
        wizard_step = WizardStep(step)
    except ValueError:
        return GenerationState.IDLE
    return _STEP_TO_STATE[wizard_step]


def map_state_to_wizard_step(state: GenerationState) -> WizardStep:
    """Map a pipeline state to the wizard step shown by the UI."""
    return _STATE_TO_STEP.get(state, WizardStep.IDLE)
