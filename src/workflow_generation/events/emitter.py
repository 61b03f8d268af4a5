"""Transition observer implementations for state machine observability.

The state machine reports every transition attempt to a single injected
observer instead of logging inline. This module defines the abstract
TransitionObserver interface and concrete implementations:

- LoggingTransitionObserver: Reports events as structured log entries
- CompositeTransitionObserver: Fans events out to several observers
- RecordingTransitionObserver: Keeps events in memory (for tests and debugging)
- NullTransitionObserver: Discards events

Observers are called synchronously from within state machine operations,
so they must be cheap and must not call back into the manager.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Sequence

from src.workflow_generation.events.models import EventType, TransitionEvent


logger = logging.getLogger(__name__)


class ObserverSinkType(str, Enum):
    """Observer sinks that can be enabled through configuration.

    Attributes:
        LOGGING: Report events as structured log entries.
        METRICS: Report events as Prometheus metrics.
    """

    LOGGING = "logging"
    METRICS = "metrics"


class TransitionObserver(ABC):
    """Abstract base class for transition observers.

    Example:
        >>> class PrintingObserver(TransitionObserver):
        ...     def notify(self, event: TransitionEvent) -> None:
        ...         print(event.to_state.value)
    """

    @abstractmethod
    def notify(self, event: TransitionEvent) -> None:
        """Receive a transition event.

        Args:
            event: The transition attempt being reported.
        """


class LoggingTransitionObserver(TransitionObserver):
    """Observer that logs events using structured logging.

    Log levels depend on the debug flag:

    - TRANSITION / RESET: INFO in debug mode, DEBUG otherwise
    - REJECTED: WARNING in debug mode, DEBUG otherwise
    - ERROR: always ERROR

    Attributes:
        debug_mode: Whether routine events are logged at visible levels.
    """

    def __init__(self, debug_mode: bool = False, logger_name: Optional[str] = None):
        """Initialize the logging observer.

        Args:
            debug_mode: Log routine events at INFO/WARNING instead of DEBUG.
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self.debug_mode = debug_mode
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    def _level_for(self, event_type: EventType) -> int:
        if event_type == EventType.ERROR:
            return logging.ERROR
        if not self.debug_mode:
            return logging.DEBUG
        if event_type == EventType.REJECTED:
            return logging.WARNING
        return logging.INFO

    def notify(self, event: TransitionEvent) -> None:
        if event.event_type == EventType.REJECTED:
            message = "Transition rejected: %s -> %s"
        else:
            message = "Transitioned: %s -> %s"

        self._logger.log(
            self._level_for(event.event_type),
            message,
            event.from_state.value,
            event.to_state.value,
            extra=event.to_log_dict(),
        )


class CompositeTransitionObserver(TransitionObserver):
    """Observer that delegates to multiple child observers.

    Failures in one observer do not affect others; each child is called
    independently and errors are logged but not propagated.
    """

    def __init__(self, observers: Optional[Sequence[TransitionObserver]] = None):
        self._observers: List[TransitionObserver] = list(observers or [])

    def add_observer(self, observer: TransitionObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: TransitionObserver) -> bool:
        """Remove a child observer.

        Returns:
            True if the observer was found and removed, False otherwise.
        """
        try:
            self._observers.remove(observer)
            return True
        except ValueError:
            return False

    @property
    def observers(self) -> List[TransitionObserver]:
        """Read-only copy of the child observers."""
        return list(self._observers)

    def notify(self, event: TransitionEvent) -> None:
        for observer in self._observers:
            try:
                observer.notify(event)
            except Exception as e:
                logger.error(
                    "Failed to notify %s: %s",
                    type(observer).__name__,
                    str(e),
                    extra={
                        "observer_type": type(observer).__name__,
                        "event_type": event.event_type.value,
                        "session_id": event.session_id,
                    },
                )


class RecordingTransitionObserver(TransitionObserver):
    """Observer that keeps every event in memory, in order."""

    def __init__(self) -> None:
        self.events: List[TransitionEvent] = []

    def notify(self, event: TransitionEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[TransitionEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class NullTransitionObserver(TransitionObserver):
    """Observer that discards all events."""

    def notify(self, event: TransitionEvent) -> None:
        pass


def create_transition_observer(
    sink_types: Optional[Sequence[ObserverSinkType]] = None,
    debug_mode: bool = False,
    logger_name: Optional[str] = None,
) -> TransitionObserver:
    """Factory function to create observers based on configuration.

    Args:
        sink_types: Sinks to enable. If None or empty, returns a
                    LoggingTransitionObserver as the default.
        debug_mode: Passed to the LoggingTransitionObserver.
        logger_name: Optional logger name for the LoggingTransitionObserver.

    Returns:
        A single observer, or a CompositeTransitionObserver when more than
        one sink is requested.

    Example:
        >>> observer = create_transition_observer([ObserverSinkType.LOGGING])
        >>> isinstance(observer, LoggingTransitionObserver)
        True
    """
    if not sink_types:
        return LoggingTransitionObserver(debug_mode=debug_mode, logger_name=logger_name)

    observers: List[TransitionObserver] = []

    for sink_type in sink_types:
        if sink_type == ObserverSinkType.LOGGING:
            observers.append(
                LoggingTransitionObserver(debug_mode=debug_mode, logger_name=logger_name)
            )
        elif sink_type == ObserverSinkType.METRICS:
            # Imported here so metrics.py can import from this module
            from src.workflow_generation.events.metrics import MetricsTransitionObserver

            observers.append(MetricsTransitionObserver())
        else:
            logger.warning("Unknown observer sink type: %s, skipping", sink_type)

    if not observers:
        return LoggingTransitionObserver(debug_mode=debug_mode, logger_name=logger_name)

    if len(observers) == 1:
        return observers[0]

    return CompositeTransitionObserver(observers)
