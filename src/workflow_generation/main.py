"""FastAPI application entry point for the workflow generation wizard.

This module exposes the workflow generation state machine over HTTP so UI
collaborators and pipeline drivers can advance a wizard session. Each route
maps onto one guarded operation or orchestration helper of
WorkflowGenerationStateManager; the AI work (question and blueprint
generation) happens in the caller, which posts already-resolved results.

Status codes:
- 200: operation applied, body is the session snapshot
- 400: operation is never valid in the current state (caller bug)
- 404: unknown session
- 409: operation rejected (invalid transition, guard, retry budget)
- 429: session limit reached
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .config import WorkflowGenerationSettings, get_settings
from .events.metrics import generate_metrics_output, get_metrics
from .sessions import SessionLimitError, SessionNotFoundError, SessionRegistry
from .state.machine import WorkflowGenerationStateManager
from .state.models import ClarifyingQuestion, ValidationIssue, WorkflowBlueprint
from .state.results import IllegalOperationError, OperationResult
from .state.wizard import map_state_to_wizard_step

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Request bodies
# -----------------------------------------------------------------------------


class PromptRequest(BaseModel):
    prompt: str = Field(..., min_length=1)


class QuestionsRequest(BaseModel):
    questions: List[ClarifyingQuestion]


class AnswersRequest(BaseModel):
    answers: Dict[str, str]


class UnderstandingRequest(BaseModel):
    final_understanding: str


class RequiredCredentialsRequest(BaseModel):
    credentials: List[str]


class ProvidedCredentialsRequest(BaseModel):
    credentials: Dict[str, str]


class BlueprintRequest(BaseModel):
    blueprint: Optional[WorkflowBlueprint] = None


class ErrorRequest(BaseModel):
    message: str = Field(..., min_length=1)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: WorkflowGenerationSettings) -> None:
    """Log configuration values on startup."""
    logger.info("Workflow generation configuration:")
    logger.info(f"  Debug Mode: {settings.debug_mode}")
    logger.info(f"  Max Retries: {settings.max_retries}")
    logger.info(f"  Event Sinks: {[sink.value for sink in settings.event_sinks]}")
    logger.info(f"  Max Sessions: {settings.max_sessions}")
    logger.info(f"  Log Level: {settings.log_level}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def session_view(session_id: str, manager: WorkflowGenerationStateManager) -> Dict[str, Any]:
    """Build the JSON snapshot of a session with credential values redacted."""
    state = manager.get_execution_state()
    execution_state = state.model_dump(mode="json")
    execution_state["credentials_provided"] = {
        name: _redact_secret(value)
        for name, value in state.credentials_provided.items()
    }
    return {
        "session_id": session_id,
        "current_state": state.current_state.value,
        "wizard_step": map_state_to_wizard_step(state.current_state).value,
        "is_terminal": manager.is_terminal_state(),
        "missing_credentials": manager.missing_credentials(),
        "execution_state": execution_state,
    }


def _raise_on_failure(result: OperationResult) -> None:
    if result.success:
        return
    raise HTTPException(
        status_code=409,
        detail={
            "error": result.error,
            "kind": result.kind.value if result.kind else None,
            "missing_credentials": list(result.missing_credentials),
        },
    )


# -----------------------------------------------------------------------------
# Application factory
# -----------------------------------------------------------------------------


def create_app(
    settings: Optional[WorkflowGenerationSettings] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration. Read from the environment if None.
        registry: Session registry. Built from settings if None.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level)
    if settings.debug_mode:
        logging.getLogger("src.workflow_generation").setLevel(logging.DEBUG)
    _log_configuration(settings)

    if registry is None:
        registry = SessionRegistry(settings=settings, metrics=get_metrics())

    app = FastAPI(
        title="Workflow Generation Wizard",
        description="Guarded state machine driving AI-assisted workflow generation",
        version="1.0.0",
    )
    app.state.registry = registry

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, exc: SessionNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(SessionLimitError)
    async def session_limit(request: Request, exc: SessionLimitError):
        return JSONResponse(status_code=429, content={"error": str(exc)})

    @app.exception_handler(IllegalOperationError)
    async def illegal_operation(request: Request, exc: IllegalOperationError):
        logger.warning(
            "Illegal operation requested",
            extra={
                "operation": exc.operation,
                "current_state": exc.current_state.value,
            },
        )
        return JSONResponse(
            status_code=400,
            content={
                "error": exc.message,
                "operation": exc.operation,
                "current_state": exc.current_state.value,
            },
        )

    @app.get("/health")
    def health():
        """Liveness probe endpoint."""
        return {"status": "ok"}

    @app.get("/metrics", response_class=PlainTextResponse)
    def metrics():
        """Prometheus metrics endpoint."""
        return PlainTextResponse(generate_metrics_output().decode("utf-8"))

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @app.post("/sessions", status_code=201)
    def create_session():
        session_id = registry.create()
        return session_view(session_id, registry.get(session_id))

    @app.get("/sessions/{session_id}")
    def get_session(session_id: str):
        with registry.session(session_id) as manager:
            return session_view(session_id, manager)

    @app.delete("/sessions/{session_id}", status_code=204)
    def delete_session(session_id: str):
        registry.delete(session_id)
        return Response(status_code=204)

    @app.get("/sessions/{session_id}/history")
    def get_history(session_id: str):
        with registry.session(session_id) as manager:
            return [entry.model_dump(mode="json") for entry in manager.get_state_history()]

    # -------------------------------------------------------------------------
    # Guarded operations
    # -------------------------------------------------------------------------

    @app.post("/sessions/{session_id}/prompt")
    def set_prompt(session_id: str, body: PromptRequest):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.set_user_prompt(body.prompt))
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/questions")
    def set_questions(session_id: str, body: QuestionsRequest):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.set_clarifying_questions(body.questions))
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/answers")
    def set_answers(session_id: str, body: AnswersRequest):
        with registry.session(session_id) as manager:
            manager.set_clarifying_answers(body.answers)
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/understanding")
    def confirm_understanding(session_id: str, body: UnderstandingRequest):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.confirm_understanding(body.final_understanding))
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/credentials/required")
    def set_required_credentials(session_id: str, body: RequiredCredentialsRequest):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.set_required_credentials(body.credentials))
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/credentials/provided")
    def set_provided_credentials(session_id: str, body: ProvidedCredentialsRequest):
        with registry.session(session_id) as manager:
            manager.set_provided_credentials(body.credentials)
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/build")
    def start_building(session_id: str):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.start_building())
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/blueprint")
    def set_blueprint(session_id: str, body: BlueprintRequest):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.set_workflow_blueprint(body.blueprint))
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/validation-errors")
    def add_validation_error(session_id: str, body: ValidationIssue):
        with registry.session(session_id) as manager:
            manager.add_validation_error(body)
            return session_view(session_id, manager)

    @app.delete("/sessions/{session_id}/validation-errors")
    def clear_validation_errors(session_id: str):
        with registry.session(session_id) as manager:
            manager.clear_validation_errors()
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/retry")
    def retry_building(session_id: str):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.retry_building())
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/ready")
    def mark_ready(session_id: str):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.mark_workflow_ready())
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/error")
    def handle_error(session_id: str, body: ErrorRequest):
        with registry.session(session_id) as manager:
            manager.handle_error(body.message)
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/reset")
    def reset(session_id: str):
        with registry.session(session_id) as manager:
            manager.reset()
            return session_view(session_id, manager)

    # -------------------------------------------------------------------------
    # Orchestration helpers
    # -------------------------------------------------------------------------

    @app.post("/sessions/{session_id}/ensure-building")
    def ensure_building(session_id: str):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.ensure_state_for_building())
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/move-to-validation")
    def move_to_validation(session_id: str, body: BlueprintRequest):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.move_to_validation(body.blueprint))
            return session_view(session_id, manager)

    @app.post("/sessions/{session_id}/move-to-ready")
    def move_to_ready(session_id: str):
        with registry.session(session_id) as manager:
            _raise_on_failure(manager.move_to_ready())
            return session_view(session_id, manager)

    return app


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        create_app(dev_settings),
        host=dev_settings.host,
        port=dev_settings.port,
    )
