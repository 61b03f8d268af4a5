"""Workflow generation state machine implementation.

This module implements the WorkflowGenerationStateManager class that
sequences the workflow generation pipeline:

    describe → clarify → confirm → collect credentials → build → validate → ready

The manager owns a single ExecutionState aggregate. Every mutation goes
through a guarded operation that validates its preconditions and the
transition table before touching any data, so each call either fully
applies (data and transition) or fully rejects.

Failures are reported as OperationResult values:
- INVALID_TRANSITION: the target is not a legal successor, or the
  operation does not run from the current state
- GUARD_VIOLATION: a precondition (credentials, understanding, validation
  errors, blueprint) was not met
- RETRY_EXHAUSTED: the build retry budget is used up

Caller logic errors raise IllegalOperationError instead.

The manager performs no locking and no I/O. One instance serves one wizard
session; concurrent callers must be serialized externally (see
src.workflow_generation.sessions).
"""

import copy
import logging
from typing import (
    Any,
    Callable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel

from src.workflow_generation.events.emitter import (
    LoggingTransitionObserver,
    TransitionObserver,
)
from src.workflow_generation.events.models import EventType, TransitionEvent
from src.workflow_generation.state.models import (
    MAX_RETRIES,
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


logger = logging.getLogger(__name__)


QuestionInput = Union[ClarifyingQuestion, Mapping[str, Any]]
ValidationIssueInput = Union[ValidationIssue, Mapping[str, Any]]
BlueprintInput = Union[WorkflowBlueprint, Mapping[str, Any], None]
ModelT = TypeVar("ModelT", bound=BaseModel)

_BUILD_STATES = frozenset(
    {
        GenerationState.WORKFLOW_BUILDING,
        GenerationState.WORKFLOW_VALIDATION,
        GenerationState.WORKFLOW_READY,
    }
)


def _is_credential_provided(name: str, provided: Mapping[str, str]) -> bool:
    # Matches the exact name or its lower-cased spelling. Empty values
    # count as missing.
    return bool(provided.get(name)) or bool(provided.get(name.lower()))


def _owned(model_cls: Type[ModelT], value: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    # The aggregate never shares objects with the caller.
    if isinstance(value, model_cls):
        return value.model_copy(deep=True)
    return model_cls.model_validate(copy.deepcopy(dict(value)))


def _coerce_blueprint(blueprint: BlueprintInput) -> Optional[WorkflowBlueprint]:
    if blueprint is None:
        return None
    return _owned(WorkflowBlueprint, blueprint)


class WorkflowGenerationStateManager:
    """Guarded finite-state machine for workflow generation.

    The manager enforces the following invariants:
    - Only transitions listed in ALLOWED_TRANSITIONS are applied, except
      handle_error which may enter ERROR_HANDLING from any state
    - state_history grows by exactly one entry per applied transition and
      its last entry always matches current_state
    - retry_count never exceeds max_retries until reset()
    - Rejected operations leave the execution state untouched

    Every transition attempt, applied or rejected, is reported to the
    injected observer.

    Attributes:
        observer: Receives a TransitionEvent for every transition attempt.
        debug_mode: Recorded on the execution state; also selects verbose
            logging when no observer is injected.
        max_retries: Build retry budget (at most MAX_RETRIES).
        session_id: Optional identifier attached to reported events.

    Example:
        >>> manager = WorkflowGenerationStateManager()
        >>> _ = manager.set_user_prompt("Email me new form submissions")
        >>> _ = manager.set_clarifying_questions([{"id": "q1", "text": "Which form?"}])
        >>> result = manager.confirm_understanding("Forward form entries by email")
        >>> result.success
        True
    """

    def __init__(
        self,
        observer: Optional[TransitionObserver] = None,
        debug_mode: bool = False,
        max_retries: int = MAX_RETRIES,
        session_id: Optional[str] = None,
    ):
        """Initialize the manager in IDLE.

        Args:
            observer: Transition observer. Defaults to a
                      LoggingTransitionObserver honoring debug_mode.
            debug_mode: Enable verbose transition logging.
            max_retries: Build retry budget, between 0 and MAX_RETRIES.
            session_id: Optional session identifier for reported events.

        Raises:
            ValueError: If max_retries is outside 0..MAX_RETRIES.
        """
        if not 0 <= max_retries <= MAX_RETRIES:
            raise ValueError(f"max_retries must be between 0 and {MAX_RETRIES}")

        self.debug_mode = debug_mode
        self.max_retries = max_retries
        self.session_id = session_id
        self.observer = observer or LoggingTransitionObserver(debug_mode=debug_mode)
        self._state = self._initialize_state()

    def _initialize_state(self) -> ExecutionState:
        return ExecutionState(debug_mode=self.debug_mode)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_execution_state(self) -> ExecutionState:
        """Return an independent deep copy of the execution state."""
        return self._state.model_copy(deep=True)

    def get_current_state(self) -> GenerationState:
        return self._state.current_state

    def get_state_history(self) -> List[StateHistoryEntry]:
        """Return a copy of the state history."""
        return [entry.model_copy() for entry in self._state.state_history]

    def is_terminal_state(self) -> bool:
        """True when the pipeline is in WORKFLOW_READY or ERROR_HANDLING."""
        return is_terminal_state(self._state.current_state)

    # ------------------------------------------------------------------
    # Transition primitive
    # ------------------------------------------------------------------

    def _notify(
        self,
        event_type: EventType,
        from_state: GenerationState,
        to_state: GenerationState,
        success: bool,
        reason: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        event = TransitionEvent(
            event_type=event_type,
            from_state=from_state,
            to_state=to_state,
            success=success,
            reason=reason,
            error=error,
            session_id=self.session_id,
        )
        try:
            self.observer.notify(event)
        except Exception as e:
            logger.error(
                "Transition observer failed: %s",
                str(e),
                extra={
                    "observer_type": type(self.observer).__name__,
                    "session_id": self.session_id,
                },
            )

    def _reject(
        self, target: GenerationState, result: OperationResult
    ) -> OperationResult:
        self._notify(
            EventType.REJECTED,
            self._state.current_state,
            target,
            success=False,
            error=result.error,
        )
        return result

    def _require_state(
        self,
        operation: str,
        target: GenerationState,
        allowed: Iterable[GenerationState],
    ) -> Optional[OperationResult]:
        # Pins the states an operation may start from, on top of the table.
        current = self._state.current_state
        allowed = list(allowed)
        if current in allowed:
            return None
        return self._reject(
            target,
            OperationResult.fail(
                FailureKind.INVALID_TRANSITION,
                f"Cannot {operation} from state {current.value}. "
                f"Allowed from: {', '.join(state.value for state in allowed)}",
            ),
        )

    def _append_history(self, target: GenerationState, reason: Optional[str]) -> None:
        self._state.state_history.append(StateHistoryEntry(state=target, reason=reason))
        self._state.current_state = target

    def _apply(
        self,
        target: GenerationState,
        reason: str,
        mutate: Optional[Callable[[], None]] = None,
    ) -> OperationResult:
        # Checks legality first so a rejected call never sees mutate() run.
        check = self.can_transition_to(target)
        if not check.success:
            return self._reject(target, check)

        from_state = self._state.current_state
        if mutate is not None:
            mutate()
        self._append_history(target, reason)
        self._notify(EventType.TRANSITION, from_state, target, success=True, reason=reason)
        return OperationResult.ok()

    def can_transition_to(self, target: GenerationState) -> OperationResult:
        """Check whether target is a legal successor of the current state.

        This is a pure check; nothing is recorded or reported.

        Args:
            target: The requested state.

        Returns:
            OperationResult: Success, or an INVALID_TRANSITION failure whose
            message lists the allowed alternatives.
        """
        current = self._state.current_state
        if is_valid_transition(current, target):
            return OperationResult.ok()

        allowed = ", ".join(state.value for state in allowed_successors(current))
        return OperationResult.fail(
            FailureKind.INVALID_TRANSITION,
            f"Invalid transition from {current.value} to {target.value}. "
            f"Allowed states: {allowed or 'none'}",
        )

    def transition_to(
        self, target: GenerationState, reason: Optional[str] = None
    ) -> OperationResult:
        """Apply a table-checked transition.

        On success a history entry is appended and current_state updated.
        On failure nothing changes. Never raises.

        Args:
            target: The requested state.
            reason: Optional reason stored in the history entry.

        Returns:
            OperationResult: The outcome of the transition.
        """
        return self._apply(target, reason or "State transition")

    # ------------------------------------------------------------------
    # Guarded operations
    # ------------------------------------------------------------------

    def set_user_prompt(self, prompt: str) -> OperationResult:
        """Record the user's prompt and move to PROMPT_RECEIVED.

        Raises:
            IllegalOperationError: If the pipeline is not in IDLE.
        """
        current = self._state.current_state
        if current != GenerationState.IDLE:
            error = IllegalOperationError(
                "set_user_prompt",
                current,
                "Can only set user prompt from IDLE state",
            )
            self._notify(
                EventType.REJECTED,
                current,
                GenerationState.PROMPT_RECEIVED,
                success=False,
                error=error.message,
            )
            raise error

        def mutate() -> None:
            self._state.user_prompt = prompt

        return self._apply(
            GenerationState.PROMPT_RECEIVED, "User prompt received", mutate
        )

    def set_clarifying_questions(
        self, questions: Iterable[QuestionInput]
    ) -> OperationResult:
        """Replace the clarifying questions.

        Moves PROMPT_RECEIVED to CLARIFICATION_ACTIVE. In any other state
        this is a pure data update.
        """
        parsed = [_owned(ClarifyingQuestion, q) for q in questions]

        def mutate() -> None:
            self._state.clarifying_questions = parsed

        if self._state.current_state == GenerationState.PROMPT_RECEIVED:
            return self._apply(
                GenerationState.CLARIFICATION_ACTIVE,
                "Clarifying questions generated",
                mutate,
            )

        mutate()
        return OperationResult.ok()

    def set_clarifying_answers(self, answers: Mapping[str, str]) -> None:
        """Merge answers into the accumulated answers. Never transitions."""
        self._state.clarifying_answers.update(answers)

    def confirm_understanding(self, final_understanding: str) -> OperationResult:
        """Record the confirmed understanding and move to UNDERSTANDING_CONFIRMED.

        Args:
            final_understanding: Summary of the workflow the user agreed to.

        Returns:
            OperationResult: GUARD_VIOLATION unless in CLARIFICATION_ACTIVE.
        """
        if self._state.current_state != GenerationState.CLARIFICATION_ACTIVE:
            return self._reject(
                GenerationState.UNDERSTANDING_CONFIRMED,
                OperationResult.fail(
                    FailureKind.GUARD_VIOLATION,
                    "Can only confirm understanding from CLARIFICATION_ACTIVE state",
                ),
            )

        def mutate() -> None:
            self._state.final_understanding = final_understanding

        return self._apply(
            GenerationState.UNDERSTANDING_CONFIRMED,
            "Understanding confirmed by user",
            mutate,
        )

    def set_required_credentials(self, credentials: Sequence[str]) -> OperationResult:
        """Replace the list of required credential names.

        Moves to CREDENTIAL_COLLECTION from UNDERSTANDING_CONFIRMED, or from
        WORKFLOW_BUILDING when credentials are discovered mid-build. In any
        other state this is a pure data update.
        """
        required = list(credentials)

        def mutate() -> None:
            self._state.credentials_required = required

        current = self._state.current_state
        if current == GenerationState.UNDERSTANDING_CONFIRMED:
            return self._apply(
                GenerationState.CREDENTIAL_COLLECTION,
                "Credentials required identified",
                mutate,
            )
        if current == GenerationState.WORKFLOW_BUILDING:
            return self._apply(
                GenerationState.CREDENTIAL_COLLECTION,
                "Credentials required detected during building",
                mutate,
            )

        mutate()
        return OperationResult.ok()

    def set_provided_credentials(self, credentials: Mapping[str, str]) -> None:
        """Replace the provided credential values. Never transitions."""
        self._state.credentials_provided = dict(credentials)

    def missing_credentials(self) -> List[str]:
        """Required credential names without a provided value, in order."""
        provided = self._state.credentials_provided
        return [
            name
            for name in self._state.credentials_required
            if not _is_credential_provided(name, provided)
        ]

    def start_building(self) -> OperationResult:
        """Move to WORKFLOW_BUILDING once credentials and understanding are in place.

        Only valid from UNDERSTANDING_CONFIRMED or CREDENTIAL_COLLECTION;
        re-entering building from validation goes through retry_building.

        Guards, checked in order:
        1. every required credential has a provided value
        2. final_understanding is non-empty

        Returns:
            OperationResult: INVALID_TRANSITION from any other state,
            GUARD_VIOLATION naming the missing credentials, GUARD_VIOLATION
            for a missing understanding, or the transition outcome.
        """
        target = GenerationState.WORKFLOW_BUILDING

        rejected = self._require_state(
            "start building",
            target,
            (
                GenerationState.UNDERSTANDING_CONFIRMED,
                GenerationState.CREDENTIAL_COLLECTION,
            ),
        )
        if rejected is not None:
            return rejected

        missing = self.missing_credentials()
        if missing:
            return self._reject(
                target,
                OperationResult.fail(
                    FailureKind.GUARD_VIOLATION,
                    "Cannot build workflow: Missing required credentials: "
                    + ", ".join(missing),
                    missing_credentials=missing,
                ),
            )

        if not self._state.final_understanding:
            return self._reject(
                target,
                OperationResult.fail(
                    FailureKind.GUARD_VIOLATION,
                    "Cannot build workflow: Understanding not confirmed",
                ),
            )

        return self._apply(target, "Workflow building started")

    def set_workflow_blueprint(self, blueprint: BlueprintInput) -> OperationResult:
        """Store the generated blueprint and move to WORKFLOW_VALIDATION.

        The blueprint is only stored if the transition is legal.
        """
        parsed = _coerce_blueprint(blueprint)

        def mutate() -> None:
            self._state.workflow_blueprint = parsed

        return self._apply(
            GenerationState.WORKFLOW_VALIDATION,
            "Workflow blueprint generated",
            mutate,
        )

    def add_validation_error(self, error: ValidationIssueInput) -> None:
        self._state.validation_errors.append(_owned(ValidationIssue, error))

    def clear_validation_errors(self) -> None:
        self._state.validation_errors = []

    def retry_building(self) -> OperationResult:
        """Go back from WORKFLOW_VALIDATION to WORKFLOW_BUILDING for another attempt.

        The blueprint and validation errors of the failed attempt are
        cleared so they cannot leak into the next one.

        Returns:
            OperationResult: INVALID_TRANSITION outside WORKFLOW_VALIDATION,
            RETRY_EXHAUSTED once max_retries attempts have been used (the
            caller should then call handle_error), or the transition outcome.
        """
        target = GenerationState.WORKFLOW_BUILDING

        rejected = self._require_state(
            "retry building", target, (GenerationState.WORKFLOW_VALIDATION,)
        )
        if rejected is not None:
            return rejected

        if self._state.retry_count >= self.max_retries:
            return self._reject(
                target,
                OperationResult.fail(
                    FailureKind.RETRY_EXHAUSTED,
                    f"Maximum retry count ({self.max_retries}) reached. "
                    "Escalate with handle_error.",
                ),
            )

        attempt = self._state.retry_count + 1

        def mutate() -> None:
            self._state.retry_count = attempt
            self._state.workflow_blueprint = None
            self._state.validation_errors = []

        return self._apply(target, f"Retry {attempt}/{self.max_retries}", mutate)

    def mark_workflow_ready(self) -> OperationResult:
        """Move from WORKFLOW_VALIDATION to the terminal WORKFLOW_READY.

        Guards, checked in order once the pipeline is in WORKFLOW_VALIDATION:
        1. no validation errors remain
        2. the blueprint has a non-empty node list
        """
        target = GenerationState.WORKFLOW_READY

        rejected = self._require_state(
            "mark workflow ready", target, (GenerationState.WORKFLOW_VALIDATION,)
        )
        if rejected is not None:
            return rejected

        remaining = len(self._state.validation_errors)
        if remaining:
            return self._reject(
                target,
                OperationResult.fail(
                    FailureKind.GUARD_VIOLATION,
                    f"Cannot mark workflow as ready: {remaining} validation errors remain",
                ),
            )

        blueprint = self._state.workflow_blueprint
        if blueprint is None or not blueprint.has_nodes():
            return self._reject(
                target,
                OperationResult.fail(
                    FailureKind.GUARD_VIOLATION,
                    "Cannot mark workflow as ready: No workflow blueprint",
                ),
            )

        return self._apply(target, "Workflow validated and ready")

    def handle_error(self, message: str) -> OperationResult:
        """Record an error and enter ERROR_HANDLING from any state.

        This is the only transition not checked against ALLOWED_TRANSITIONS.
        """
        from_state = self._state.current_state
        reason = f"Error: {message}"

        self._state.last_error = message
        self._append_history(GenerationState.ERROR_HANDLING, reason)
        self._notify(
            EventType.ERROR,
            from_state,
            GenerationState.ERROR_HANDLING,
            success=True,
            reason=reason,
            error=message,
        )
        return OperationResult.ok()

    def reset(self) -> None:
        """Reinitialize the execution state to IDLE with a fresh history."""
        from_state = self._state.current_state
        self._state = self._initialize_state()
        self._notify(
            EventType.RESET,
            from_state,
            GenerationState.IDLE,
            success=True,
            reason="State reset to IDLE",
        )

    # ------------------------------------------------------------------
    # Orchestration helpers
    # ------------------------------------------------------------------

    def ensure_state_for_building(self) -> OperationResult:
        """Drive the pipeline forward until building has started.

        Idempotent: from WORKFLOW_BUILDING, WORKFLOW_VALIDATION or
        WORKFLOW_READY it succeeds without changing anything. Otherwise it
        takes the shortest legal path through the guarded operations:

        - IDLE / PROMPT_RECEIVED: fails, nothing to build from yet
        - CLARIFICATION_ACTIVE: confirms the stored final_understanding
        - UNDERSTANDING_CONFIRMED: goes through CREDENTIAL_COLLECTION when
          credentials are required, otherwise starts building directly
        - CREDENTIAL_COLLECTION: starts building
        """
        current = self._state.current_state

        if current in (GenerationState.IDLE, GenerationState.PROMPT_RECEIVED):
            return OperationResult.fail(
                FailureKind.GUARD_VIOLATION,
                "Cannot build: Understanding not confirmed",
            )

        if current == GenerationState.CLARIFICATION_ACTIVE:
            if not self._state.final_understanding:
                return OperationResult.fail(
                    FailureKind.GUARD_VIOLATION,
                    "Cannot build: Final understanding not set",
                )
            result = self.confirm_understanding(self._state.final_understanding)
            if not result.success:
                return result

        if self._state.current_state == GenerationState.UNDERSTANDING_CONFIRMED:
            if not self._state.credentials_required:
                return self.start_building()
            result = self.transition_to(
                GenerationState.CREDENTIAL_COLLECTION,
                "Moving to credential collection",
            )
            if not result.success:
                return result

        if self._state.current_state == GenerationState.CREDENTIAL_COLLECTION:
            return self.start_building()

        if self._state.current_state in _BUILD_STATES:
            return OperationResult.ok()

        return OperationResult.fail(
            FailureKind.INVALID_TRANSITION,
            f"Invalid state for building: {self._state.current_state.value}",
        )

    def move_to_validation(self, blueprint: BlueprintInput) -> OperationResult:
        """Store a blueprint and reach WORKFLOW_VALIDATION from any pre-build state."""
        if self._state.current_state != GenerationState.WORKFLOW_BUILDING:
            result = self.ensure_state_for_building()
            if not result.success:
                return result

        return self.set_workflow_blueprint(blueprint)

    def move_to_ready(self) -> OperationResult:
        """Reach WORKFLOW_READY from WORKFLOW_BUILDING or WORKFLOW_VALIDATION."""
        current = self._state.current_state

        if current == GenerationState.WORKFLOW_VALIDATION:
            return self.mark_workflow_ready()

        if current == GenerationState.WORKFLOW_BUILDING:
            result = self.move_to_validation(self._state.workflow_blueprint)
            if not result.success:
                return result
            return self.mark_workflow_ready()

        return OperationResult.fail(
            FailureKind.INVALID_TRANSITION,
            f"Cannot mark ready from state: {current.value}",
        )
