"""Wizard session registry.

The state manager performs no locking, so each wizard session gets its own
WorkflowGenerationStateManager and its own lock. Callers drive a session
inside ``with registry.session(session_id) as manager:`` which serializes
operations on that session while leaving other sessions independent.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from src.workflow_generation.config import WorkflowGenerationSettings
from src.workflow_generation.events.emitter import (
    TransitionObserver,
    create_transition_observer,
)
from src.workflow_generation.events.metrics import WorkflowGenerationMetrics
from src.workflow_generation.state.machine import WorkflowGenerationStateManager


logger = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """Raised when a session id is not registered.

    Attributes:
        session_id: The id that was not found.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Wizard session not found: {session_id}")


class SessionLimitError(Exception):
    """Raised when creating a session would exceed max_sessions.

    Attributes:
        max_sessions: The configured limit.
    """

    def __init__(self, max_sessions: int):
        self.max_sessions = max_sessions
        super().__init__(f"Session limit reached ({max_sessions})")


class _Session:
    __slots__ = ("manager", "lock")

    def __init__(self, manager: WorkflowGenerationStateManager):
        self.manager = manager
        self.lock = threading.Lock()


class SessionRegistry:
    """Owns one state manager per wizard session.

    All managers share a single observer built from the settings; reported
    events carry the session id so they remain distinguishable.

    Attributes:
        settings: Configuration applied to every new manager.
        observer: Observer shared by all managers.

    Example:
        >>> registry = SessionRegistry()
        >>> session_id = registry.create()
        >>> with registry.session(session_id) as manager:
        ...     _ = manager.set_user_prompt("Sync my calendar to a sheet")
    """

    def __init__(
        self,
        settings: Optional[WorkflowGenerationSettings] = None,
        observer: Optional[TransitionObserver] = None,
        metrics: Optional[WorkflowGenerationMetrics] = None,
    ):
        self.settings = settings or WorkflowGenerationSettings()
        self.observer = observer or create_transition_observer(
            self.settings.event_sinks,
            debug_mode=self.settings.debug_mode,
        )
        self._metrics = metrics
        self._sessions: Dict[str, _Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def _report_size(self) -> None:
        if self._metrics is not None:
            self._metrics.set_active_sessions(len(self._sessions))

    def create(self) -> str:
        """Register a new session in IDLE and return its id.

        Raises:
            SessionLimitError: If max_sessions sessions are already live.
        """
        with self._lock:
            if len(self._sessions) >= self.settings.max_sessions:
                raise SessionLimitError(self.settings.max_sessions)

            session_id = uuid.uuid4().hex
            manager = WorkflowGenerationStateManager(
                observer=self.observer,
                debug_mode=self.settings.debug_mode,
                max_retries=self.settings.max_retries,
                session_id=session_id,
            )
            self._sessions[session_id] = _Session(manager)
            self._report_size()

        logger.info("Wizard session created", extra={"session_id": session_id})
        return session_id

    def _lookup(self, session_id: str) -> _Session:
        with self._lock:
            entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)
        return entry

    def get(self, session_id: str) -> WorkflowGenerationStateManager:
        """Return the manager without locking; prefer session() for mutation."""
        return self._lookup(session_id).manager

    @contextmanager
    def session(self, session_id: str) -> Iterator[WorkflowGenerationStateManager]:
        """Hold the session lock while the caller drives the manager.

        Raises:
            SessionNotFoundError: If the session id is unknown.
        """
        entry = self._lookup(session_id)
        with entry.lock:
            yield entry.manager

    def delete(self, session_id: str) -> None:
        """Remove a session.

        Raises:
            SessionNotFoundError: If the session id is unknown.
        """
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
            self._report_size()

        logger.info("Wizard session deleted", extra={"session_id": session_id})

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)
