"""
Flask application factory for the ThreadCraft workflow API.

Wires CORS, the workflow error-to-status mapping and the blueprints. The
factory is the composition root: it builds the one WorkflowEngine and
WorkflowAnalytics the app uses.
"""

import logging
from datetime import timedelta

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from threadcraft.config import configure_logging, get_config
from threadcraft.domain import (
    DuplicateDefinitionError,
    DuplicateWorkflowError,
    InvalidDefinitionError,
    InvalidStepError,
    InvalidTransitionError,
    UnknownExpectedDurationError,
    UnknownWorkflowError,
    UnknownWorkflowTypeError,
    WorkflowError,
)
from threadcraft.persistence import EngineSnapshotRepository
from threadcraft.services import WorkflowAnalytics, WorkflowEngine

logger = logging.getLogger(__name__)

# Most specific first; TerminalStateError is caught as an InvalidTransitionError
ERROR_STATUS = [
    (UnknownWorkflowError, 404, "Not Found"),
    (UnknownWorkflowTypeError, 404, "Not Found"),
    (InvalidTransitionError, 409, "Conflict"),
    (DuplicateDefinitionError, 409, "Conflict"),
    (DuplicateWorkflowError, 409, "Conflict"),
    (InvalidStepError, 400, "Bad Request"),
    (InvalidDefinitionError, 400, "Bad Request"),
    (UnknownExpectedDurationError, 422, "Unprocessable Entity"),
]


def create_app(config=None, engine: WorkflowEngine = None, analytics: WorkflowAnalytics = None) -> Flask:
    """
    Build the workflow API app.

    Args:
        config: Optional Config (read from the environment when omitted)
        engine: Optional pre-built engine (tests pass their own)
        analytics: Optional pre-built analytics service

    Returns:
        Flask app with the engine and analytics in app.config
    """
    app = Flask(__name__)

    # Load configuration
    app_config = config or get_config()
    app.config["SECRET_KEY"] = app_config.SECRET_KEY
    app.config["DEBUG"] = app_config.FLASK_DEBUG

    # Store config for access in routes
    app.config["APP_CONFIG"] = app_config

    CORS(app, origins=app_config.CORS_ORIGINS)

    if engine is None:
        engine = WorkflowEngine()
        if app_config.LOAD_DEFAULT_DEFINITIONS:
            engine.register_default_definitions()
    app.config["WORKFLOW_ENGINE"] = engine

    if analytics is None:
        analytics = WorkflowAnalytics(
            engine,
            snapshot_source=EngineSnapshotRepository(engine),
            strict=app_config.ANALYTICS_STRICT,
            default_expected_completion_time=timedelta(days=app_config.DEFAULT_EXPECTED_COMPLETION_DAYS),
            stuck_threshold=timedelta(hours=app_config.STUCK_THRESHOLD_HOURS),
        )
    app.config["WORKFLOW_ANALYTICS"] = analytics

    # Register error handlers
    register_error_handlers(app)

    # Register routes
    from .routes import register_routes
    register_routes(app)

    # Health check endpoint
    @app.route("/health")
    def health_check():
        """Liveness plus registry counts."""
        engine = app.config["WORKFLOW_ENGINE"]
        return jsonify({
            "status": "healthy",
            "definitions": len(engine.list_definitions()),
            "workflows": len(engine.list_workflows()),
        }), 200

    logger.info("Flask application created")
    return app


def error_response(code: int, name: str, message: str):
    return jsonify({
        "error": {
            "code": code,
            "name": name,
            "message": message,
        }
    }), code


def register_error_handlers(app: Flask) -> None:
    """Register error handlers for the application."""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        """Handle HTTP exceptions."""
        return error_response(e.code, e.name, e.description)

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(e: WorkflowError):
        """Map workflow error kinds to client-facing statuses."""
        for error_type, code, name in ERROR_STATUS:
            if isinstance(e, error_type):
                return error_response(code, name, str(e))
        logger.exception(f"Unmapped workflow error: {e}")
        return error_response(500, "Internal Server Error", "An unexpected error occurred")

    @app.errorhandler(ValueError)
    def handle_value_error(e: ValueError):
        """Bad input that is not a workflow error (dates, duplicate ids)."""
        return error_response(400, "Bad Request", str(e))

    @app.errorhandler(Exception)
    def handle_generic_exception(e: Exception):
        """Handle unexpected errors."""
        logger.exception(f"Unhandled exception: {e}")
        return error_response(500, "Internal Server Error", "An unexpected error occurred")


if __name__ == "__main__":
    configure_logging()
    create_app().run()
