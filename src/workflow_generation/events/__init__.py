"""Transition observers and metrics.

Observers:
- TransitionObserver: Abstract base class for transition observers
- LoggingTransitionObserver: Reports events as structured log entries
- CompositeTransitionObserver: Reports to multiple observers simultaneously
- MetricsTransitionObserver: Reports events as Prometheus metrics
- RecordingTransitionObserver: Keeps events in memory
- NullTransitionObserver: Discards events

Factory:
- create_transition_observer: Creates observers based on configuration
- ObserverSinkType: Enum of supported observer sinks
"""

from src.workflow_generation.events.emitter import (
    CompositeTransitionObserver,
    LoggingTransitionObserver,
    NullTransitionObserver,
    ObserverSinkType,
    RecordingTransitionObserver,
    TransitionObserver,
    create_transition_observer,
)
from src.workflow_generation.events.metrics import (
    MetricsTransitionObserver,
    WorkflowGenerationMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.workflow_generation.events.models import EventType, TransitionEvent

__all__ = [
    # Event models
    "EventType",
    "TransitionEvent",
    # Observers
    "TransitionObserver",
    "LoggingTransitionObserver",
    "CompositeTransitionObserver",
    "MetricsTransitionObserver",
    "RecordingTransitionObserver",
    "NullTransitionObserver",
    # Metrics
    "WorkflowGenerationMetrics",
    "get_metrics",
    "generate_metrics_output",
    # Factory and configuration
    "ObserverSinkType",
    "create_transition_observer",
]
