"""Tests for the wizard step <-> pipeline state mapping."""

import pytest

from src.workflow_generation.state.models import GenerationState
from src.workflow_generation.state.wizard import (
    WizardStep,
    map_state_to_wizard_step,
    map_wizard_step_to_state,
)


class TestWizardStepToState:
    @pytest.mark.parametrize(
        "step,expected",
        [
            ("idle", GenerationState.IDLE),
            ("analyzing", GenerationState.PROMPT_RECEIVED),
            ("questioning", GenerationState.CLARIFICATION_ACTIVE),
            ("refining", GenerationState.CLARIFICATION_ACTIVE),
            ("confirmation", GenerationState.UNDERSTANDING_CONFIRMED),
            ("credentials", GenerationState.CREDENTIAL_COLLECTION),
            ("building", GenerationState.WORKFLOW_BUILDING),
            ("complete", GenerationState.WORKFLOW_READY),
        ],
    )
    def test_known_steps(self, step, expected):
        assert map_wizard_step_to_state(step) == expected
        assert map_wizard_step_to_state(WizardStep(step)) == expected

    @pytest.mark.parametrize("step", ["", "deploying", "IDLE", "Building"])
    def test_unknown_step_maps_to_idle(self, step):
        assert map_wizard_step_to_state(step) == GenerationState.IDLE


class TestStateToWizardStep:
    def test_every_state_has_a_step(self):
        for state in GenerationState:
            assert isinstance(map_state_to_wizard_step(state), WizardStep)

    def test_validation_is_shown_as_building(self):
        assert map_state_to_wizard_step(GenerationState.WORKFLOW_VALIDATION) == WizardStep.BUILDING

    def test_error_handling_is_shown_as_idle(self):
        assert map_state_to_wizard_step(GenerationState.ERROR_HANDLING) == WizardStep.IDLE


class TestRoundTrip:
    @pytest.mark.parametrize("step", ["idle", "building", "complete"])
    def test_lossless_steps(self, step):
        assert map_state_to_wizard_step(map_wizard_step_to_state(step)).value == step

    @pytest.mark.parametrize("step", ["questioning", "refining"])
    def test_clarification_steps_collapse_to_questioning(self, step):
        state = map_wizard_step_to_state(step)
        assert map_state_to_wizard_step(state) == WizardStep.QUESTIONING
