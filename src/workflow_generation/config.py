"""Workflow generation configuration using pydantic-settings.

This module defines the WorkflowGenerationSettings class that reads
configuration from environment variables with the WORKFLOW_GEN_ prefix.
Every field has a default, so the service starts without any environment.
"""

from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.workflow_generation.events.emitter import ObserverSinkType
from src.workflow_generation.state.models import MAX_RETRIES


class WorkflowGenerationSettings(BaseSettings):
    """Workflow generation configuration from environment variables.

    All environment variables are prefixed with WORKFLOW_GEN_
    (e.g., WORKFLOW_GEN_DEBUG_MODE). List values are given as JSON
    (e.g., WORKFLOW_GEN_EVENT_SINKS='["logging", "metrics"]').
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_GEN_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # State Machine Configuration
    # -------------------------------------------------------------------------
    # Verbose transition logging
    debug_mode: bool = False

    # Build retry budget per session
    max_retries: int = MAX_RETRIES

    # Observers attached to every state manager
    event_sinks: List[ObserverSinkType] = [ObserverSinkType.LOGGING]

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Session Configuration
    # -------------------------------------------------------------------------
    # Upper bound on concurrently live wizard sessions
    max_sessions: int = 1000

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate that the retry budget stays within the hard limit."""
        if not 0 <= v <= MAX_RETRIES:
            raise ValueError(f"max_retries must be between 0 and {MAX_RETRIES}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level is a standard logging level name."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"log_level must be a standard level name, got {v!r}")
        return level

    @field_validator("max_sessions")
    @classmethod
    def validate_max_sessions(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_sessions must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> WorkflowGenerationSettings:
    """Create and return a WorkflowGenerationSettings instance.

    Raises:
        pydantic.ValidationError: If an environment value is invalid.
    """
    return WorkflowGenerationSettings()
