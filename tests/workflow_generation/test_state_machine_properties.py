"""Property-based tests for the workflow generation state machine.

This module uses Hypothesis (and exhaustive parametrization where the input
space is small) to verify that the state machine only applies transitions
listed in the transition table, keeps its audit history consistent, and
never lets a rejected operation change the execution state.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import itertools
from typing import Callable, Dict, List

import pytest
from hypothesis import given, settings, strategies as st

from src.workflow_generation.events.emitter import RecordingTransitionObserver
from src.workflow_generation.events.models import EventType
from src.workflow_generation.state.machine import WorkflowGenerationStateManager
from src.workflow_generation.state.models import (
    ALLOWED_TRANSITIONS,
    MAX_RETRIES,
    GenerationState,
)
from src.workflow_generation.state.results import IllegalOperationError


# =============================================================================
# Helper Functions
# =============================================================================


def drive_to_state(
    manager: WorkflowGenerationStateManager, target: GenerationState
) -> None:
    """Drive a fresh manager to target along a legal path."""
    if target == GenerationState.IDLE:
        return

    if target == GenerationState.ERROR_HANDLING:
        manager.handle_error("Test error")
        return

    if target == GenerationState.CREDENTIAL_COLLECTION:
        pipeline = [
            GenerationState.PROMPT_RECEIVED,
            GenerationState.CLARIFICATION_ACTIVE,
            GenerationState.UNDERSTANDING_CONFIRMED,
            GenerationState.CREDENTIAL_COLLECTION,
        ]
    else:
        pipeline = [
            GenerationState.PROMPT_RECEIVED,
            GenerationState.CLARIFICATION_ACTIVE,
            GenerationState.UNDERSTANDING_CONFIRMED,
            GenerationState.WORKFLOW_BUILDING,
            GenerationState.WORKFLOW_VALIDATION,
            GenerationState.WORKFLOW_READY,
        ]
    path = pipeline[: pipeline.index(target) + 1]

    steps: Dict[GenerationState, Callable[[], object]] = {
        GenerationState.PROMPT_RECEIVED: lambda: manager.set_user_prompt(
            "Post new sheet rows to Slack"
        ),
        GenerationState.CLARIFICATION_ACTIVE: lambda: manager.set_clarifying_questions(
            [{"id": "q1", "text": "Which channel?", "options": ["#general"]}]
        ),
        GenerationState.UNDERSTANDING_CONFIRMED: lambda: manager.confirm_understanding(
            "Post each new row to #general"
        ),
        GenerationState.CREDENTIAL_COLLECTION: lambda: manager.set_required_credentials(
            ["slack"]
        ),
        GenerationState.WORKFLOW_BUILDING: manager.start_building,
        GenerationState.WORKFLOW_VALIDATION: lambda: manager.set_workflow_blueprint(
            {"nodes": [{"id": "trigger"}], "edges": []}
        ),
        GenerationState.WORKFLOW_READY: manager.mark_workflow_ready,
    }

    for state in path:
        result = steps[state]()
        assert result.success, result.error

    assert manager.get_current_state() == target


def all_state_pairs() -> List[tuple]:
    return list(itertools.product(GenerationState, GenerationState))


# =============================================================================
# Property Tests
# =============================================================================


class TestTransitionTable:
    """can_transition_to agrees with ALLOWED_TRANSITIONS for every pair."""

    @pytest.mark.parametrize(
        "from_state,to_state",
        all_state_pairs(),
        ids=lambda s: s.name,
    )
    def test_can_transition_matches_table(
        self, from_state: GenerationState, to_state: GenerationState
    ) -> None:
        manager = WorkflowGenerationStateManager()
        drive_to_state(manager, from_state)

        result = manager.can_transition_to(to_state)

        assert result.success == (to_state in ALLOWED_TRANSITIONS[from_state])

    @pytest.mark.parametrize(
        "from_state,to_state",
        all_state_pairs(),
        ids=lambda s: s.name,
    )
    def test_transition_to_applies_only_listed_edges(
        self, from_state: GenerationState, to_state: GenerationState
    ) -> None:
        manager = WorkflowGenerationStateManager()
        drive_to_state(manager, from_state)
        history_before = len(manager.get_state_history())

        result = manager.transition_to(to_state, "table check")

        if to_state in ALLOWED_TRANSITIONS[from_state]:
            assert result.success
            assert manager.get_current_state() == to_state
            assert len(manager.get_state_history()) == history_before + 1
        else:
            assert not result.success
            assert manager.get_current_state() == from_state
            assert len(manager.get_state_history()) == history_before

    @pytest.mark.parametrize("from_state", list(GenerationState), ids=lambda s: s.name)
    def test_rejection_lists_allowed_alternatives(
        self, from_state: GenerationState
    ) -> None:
        manager = WorkflowGenerationStateManager()
        drive_to_state(manager, from_state)
        illegal = [s for s in GenerationState if s not in ALLOWED_TRANSITIONS[from_state]]

        for target in illegal:
            result = manager.can_transition_to(target)
            assert not result.success
            for allowed in ALLOWED_TRANSITIONS[from_state]:
                assert allowed.value in result.error

    def test_workflow_ready_has_no_successors(self) -> None:
        assert ALLOWED_TRANSITIONS[GenerationState.WORKFLOW_READY] == frozenset()

    def test_error_handling_only_exits_to_restart_states(self) -> None:
        assert ALLOWED_TRANSITIONS[GenerationState.ERROR_HANDLING] == frozenset(
            {GenerationState.CLARIFICATION_ACTIVE, GenerationState.IDLE}
        )

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            ALLOWED_TRANSITIONS[GenerationState.IDLE] = frozenset()  # type: ignore[index]


class TestErrorPath:
    """handle_error enters ERROR_HANDLING from any state."""

    @pytest.mark.parametrize(
        "from_state",
        [s for s in GenerationState if s != GenerationState.ERROR_HANDLING],
        ids=lambda s: s.name,
    )
    def test_handle_error_from_every_state(self, from_state: GenerationState) -> None:
        manager = WorkflowGenerationStateManager()
        drive_to_state(manager, from_state)
        history_before = len(manager.get_state_history())

        result = manager.handle_error("LLM timeout")

        assert result.success
        assert manager.get_current_state() == GenerationState.ERROR_HANDLING
        assert len(manager.get_state_history()) == history_before + 1
        assert manager.get_execution_state().last_error == "LLM timeout"
        assert manager.is_terminal_state()

        manager.reset()

        history = manager.get_state_history()
        assert manager.get_current_state() == GenerationState.IDLE
        assert len(history) == 1
        assert history[0].state == GenerationState.IDLE


# =============================================================================
# Random operation sequences
# =============================================================================


OPERATIONS = [
    "prompt",
    "questions",
    "answers",
    "confirm",
    "require_credentials",
    "provide_credentials",
    "start_building",
    "blueprint",
    "empty_blueprint",
    "add_validation_error",
    "clear_validation_errors",
    "retry",
    "ready",
    "error",
    "reset",
    "ensure_building",
    "move_to_validation",
    "move_to_ready",
    "back_to_clarification",
]


def apply_operation(manager: WorkflowGenerationStateManager, name: str) -> None:
    if name == "prompt":
        try:
            manager.set_user_prompt("Archive invoices from email")
        except IllegalOperationError:
            pass
    elif name == "questions":
        manager.set_clarifying_questions([{"id": "q1", "text": "Which folder?"}])
    elif name == "answers":
        manager.set_clarifying_answers({"q1": "Invoices"})
    elif name == "confirm":
        manager.confirm_understanding("Archive invoice emails to Drive")
    elif name == "require_credentials":
        manager.set_required_credentials(["gmail", "google_drive"])
    elif name == "provide_credentials":
        manager.set_provided_credentials({"gmail": "token-a", "google_drive": "token-b"})
    elif name == "start_building":
        manager.start_building()
    elif name == "blueprint":
        manager.set_workflow_blueprint({"nodes": [{"id": "n1"}]})
    elif name == "empty_blueprint":
        manager.set_workflow_blueprint({"nodes": []})
    elif name == "add_validation_error":
        manager.add_validation_error({"type": "missing_edge", "message": "n1 is orphaned"})
    elif name == "clear_validation_errors":
        manager.clear_validation_errors()
    elif name == "retry":
        manager.retry_building()
    elif name == "ready":
        manager.mark_workflow_ready()
    elif name == "error":
        manager.handle_error("Generation failed")
    elif name == "reset":
        manager.reset()
    elif name == "ensure_building":
        manager.ensure_state_for_building()
    elif name == "move_to_validation":
        manager.move_to_validation({"nodes": [{"id": "n1"}]})
    elif name == "move_to_ready":
        manager.move_to_ready()
    elif name == "back_to_clarification":
        manager.transition_to(GenerationState.CLARIFICATION_ACTIVE, "Edit answers")


class TestInvariantsUnderRandomOperations:
    """Invariants hold for arbitrary sequences of operations."""

    @given(operations=st.lists(st.sampled_from(OPERATIONS), max_size=40))
    @settings(max_examples=200)
    def test_history_tracks_applied_transitions(self, operations: List[str]) -> None:
        observer = RecordingTransitionObserver()
        manager = WorkflowGenerationStateManager(observer=observer)

        for name in operations:
            apply_operation(manager, name)

            history = manager.get_state_history()
            applied = 0
            for event in observer.events:
                if event.event_type == EventType.RESET:
                    applied = 0
                elif event.success:
                    applied += 1

            assert history[0].state == GenerationState.IDLE
            assert history[-1].state == manager.get_current_state()
            assert len(history) == applied + 1

    @given(operations=st.lists(st.sampled_from(OPERATIONS), max_size=40))
    @settings(max_examples=200)
    def test_applied_transitions_follow_table(self, operations: List[str]) -> None:
        observer = RecordingTransitionObserver()
        manager = WorkflowGenerationStateManager(observer=observer)

        for name in operations:
            apply_operation(manager, name)

        for event in observer.of_type(EventType.TRANSITION):
            assert event.to_state in ALLOWED_TRANSITIONS[event.from_state]
        for event in observer.of_type(EventType.ERROR):
            assert event.to_state == GenerationState.ERROR_HANDLING

    @given(operations=st.lists(st.sampled_from(OPERATIONS), max_size=40))
    @settings(max_examples=200)
    def test_retry_count_stays_within_budget(self, operations: List[str]) -> None:
        manager = WorkflowGenerationStateManager()

        for name in operations:
            apply_operation(manager, name)
            assert 0 <= manager.get_execution_state().retry_count <= MAX_RETRIES

    @given(operations=st.lists(st.sampled_from(OPERATIONS), max_size=40))
    @settings(max_examples=200)
    def test_ready_implies_clean_blueprint(self, operations: List[str]) -> None:
        manager = WorkflowGenerationStateManager()

        for name in operations:
            previous = manager.get_current_state()
            apply_operation(manager, name)

            entered_ready = (
                previous != GenerationState.WORKFLOW_READY
                and manager.get_current_state() == GenerationState.WORKFLOW_READY
            )
            if entered_ready:
                state = manager.get_execution_state()
                assert state.validation_errors == []
                assert state.workflow_blueprint is not None
                assert state.workflow_blueprint.nodes

    @given(
        operations=st.lists(st.sampled_from(OPERATIONS), max_size=30),
        final=st.sampled_from(OPERATIONS),
    )
    @settings(max_examples=200)
    def test_rejected_operations_do_not_mutate(
        self, operations: List[str], final: str
    ) -> None:
        observer = RecordingTransitionObserver()
        manager = WorkflowGenerationStateManager(observer=observer)
        for name in operations:
            apply_operation(manager, name)

        before = manager.get_execution_state()
        observer.clear()

        # Pure data writes apply without a transition event.
        data_writes = {
            "questions",
            "answers",
            "require_credentials",
            "provide_credentials",
            "add_validation_error",
            "clear_validation_errors",
        }
        apply_operation(manager, final)

        rejected_only = observer.events and all(
            event.event_type == EventType.REJECTED for event in observer.events
        )
        if rejected_only and final not in data_writes:
            assert manager.get_execution_state() == before


# =============================================================================
# Credential guard
# =============================================================================


@st.composite
def credential_scenario(draw):
    """Generate required credential names and a partial set of provided values."""
    names = draw(
        st.lists(
            st.from_regex(r"[a-z][a-z_]{1,15}", fullmatch=True),
            min_size=1,
            max_size=6,
            unique=True,
        )
    )
    provided: Dict[str, str] = {}
    for name in names:
        value = draw(st.sampled_from(["absent", "empty", "set"]))
        if value == "empty":
            provided[name] = ""
        elif value == "set":
            provided[name] = draw(st.text(min_size=1, max_size=20))
    return names, provided


class TestCredentialGuard:
    """start_building names exactly the credentials without a value."""

    @given(scenario=credential_scenario())
    @settings(max_examples=100)
    def test_missing_credentials_are_exactly_the_unprovided(self, scenario) -> None:
        required, provided = scenario
        manager = WorkflowGenerationStateManager()
        drive_to_state(manager, GenerationState.UNDERSTANDING_CONFIRMED)
        manager.set_required_credentials(required)
        manager.set_provided_credentials(provided)

        expected = tuple(name for name in required if not provided.get(name))
        result = manager.start_building()

        if expected:
            assert not result.success
            assert result.missing_credentials == expected
            assert manager.get_current_state() == GenerationState.CREDENTIAL_COLLECTION
        else:
            assert result.success
            assert manager.get_current_state() == GenerationState.WORKFLOW_BUILDING
