"""Prometheus metrics for workflow generation observability.

Metrics Defined:
- workflow_generation_transitions_total: Counter of transition attempts
- workflow_generation_retries_total: Counter of build retries
- workflow_generation_errors_total: Counter of forced error transitions
- workflow_generation_resets_total: Counter of execution state resets
- workflow_generation_active_sessions: Gauge of live wizard sessions

The MetricsTransitionObserver plugs into the observer hook of the state
machine so metrics stay in step with the transition log.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from src.workflow_generation.events.emitter import TransitionObserver
from src.workflow_generation.events.models import EventType, TransitionEvent
from src.workflow_generation.state.models import GenerationState


logger = logging.getLogger(__name__)


class WorkflowGenerationMetrics:
    """Container for all workflow generation Prometheus metrics.

    Supports custom registries so tests can assert on isolated values.

    Metrics:
        transitions_total: Transition attempts.
            Labels: from_state, to_state, outcome (applied/rejected)

        retries_total: Build retries (validation back to building).

        errors_total: Forced transitions into ERROR_HANDLING.
            Labels: from_state

        resets_total: Execution state resets.

        active_sessions: Number of live wizard sessions.

    Example:
        >>> metrics = WorkflowGenerationMetrics(registry=CollectorRegistry())
        >>> metrics.record_transition("STATE_0_IDLE", "STATE_1_USER_PROMPT_RECEIVED", True)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize workflow generation metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.transitions_total = Counter(
            "workflow_generation_transitions_total",
            "Total number of state transition attempts",
            labelnames=["from_state", "to_state", "outcome"],
            registry=self.registry,
        )

        self.retries_total = Counter(
            "workflow_generation_retries_total",
            "Total number of workflow build retries",
            registry=self.registry,
        )

        self.errors_total = Counter(
            "workflow_generation_errors_total",
            "Total number of transitions into error handling",
            labelnames=["from_state"],
            registry=self.registry,
        )

        self.resets_total = Counter(
            "workflow_generation_resets_total",
            "Total number of execution state resets",
            registry=self.registry,
        )

        self.active_sessions = Gauge(
            "workflow_generation_active_sessions",
            "Current number of live wizard sessions",
            registry=self.registry,
        )

    def record_transition(self, from_state: str, to_state: str, applied: bool) -> None:
        outcome = "applied" if applied else "rejected"
        self.transitions_total.labels(
            from_state=from_state,
            to_state=to_state,
            outcome=outcome,
        ).inc()

    def record_retry(self) -> None:
        self.retries_total.inc()

    def record_error(self, from_state: str) -> None:
        self.errors_total.labels(from_state=from_state).inc()

    def record_reset(self) -> None:
        self.resets_total.inc()

    def set_active_sessions(self, count: int) -> None:
        self.active_sessions.set(max(0, count))


# Global metrics instance for the default registry
_default_metrics: Optional[WorkflowGenerationMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> WorkflowGenerationMetrics:
    """Get or create the metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        WorkflowGenerationMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return WorkflowGenerationMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = WorkflowGenerationMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsTransitionObserver(TransitionObserver):
    """Observer that updates Prometheus metrics from transition events.

    - TRANSITION: counts an applied transition (and a retry when the
      pipeline goes from validation back to building)
    - REJECTED: counts a rejected transition
    - ERROR: counts an applied transition and an error
    - RESET: counts a reset
    """

    def __init__(
        self,
        metrics: Optional[WorkflowGenerationMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        """Initialize the metrics observer.

        Args:
            metrics: Optional metrics instance. If None, uses the global
                     metrics instance.
            registry: Optional Prometheus registry. Only used if metrics
                      is None.
        """
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> WorkflowGenerationMetrics:
        return self._metrics

    def notify(self, event: TransitionEvent) -> None:
        try:
            if event.event_type == EventType.RESET:
                self._metrics.record_reset()
                return

            self._metrics.record_transition(
                event.from_state.value,
                event.to_state.value,
                applied=event.success,
            )

            if event.event_type == EventType.ERROR:
                self._metrics.record_error(event.from_state.value)
            elif (
                event.event_type == EventType.TRANSITION
                and event.from_state == GenerationState.WORKFLOW_VALIDATION
                and event.to_state == GenerationState.WORKFLOW_BUILDING
            ):
                self._metrics.record_retry()
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"event_type": event.event_type.value, "error": str(e)},
            )
