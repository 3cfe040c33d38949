"""
API routes for the workflow engine.

Defines REST endpoints for workflow definitions, instances and analytics.
Workflow errors raised by the engine propagate to the handlers registered
in app.py, which map each error kind to an HTTP status.
"""

import logging
from datetime import datetime
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request

from threadcraft.domain.entities import parse_timestamp
from threadcraft.services import WorkflowAnalytics, WorkflowEngine

logger = logging.getLogger(__name__)

# Create blueprints
definitions_bp = Blueprint("definitions", __name__, url_prefix="/api/v1/definitions")
workflows_bp = Blueprint("workflows", __name__, url_prefix="/api/v1/workflows")
analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/v1/analytics")


def get_engine() -> WorkflowEngine:
    """Get the workflow engine from Flask app config."""
    return current_app.config["WORKFLOW_ENGINE"]


def get_analytics() -> WorkflowAnalytics:
    """Get the analytics service from Flask app config."""
    return current_app.config["WORKFLOW_ANALYTICS"]


def _bool_arg(name: str) -> bool:
    return request.args.get(name, "false").lower() in ("1", "true", "yes")


def _datetime_arg(name: str) -> Optional[datetime]:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        raise ValueError(f"{name} must be an ISO-8601 timestamp")


def _body_type_error(data: dict, string_fields, object_fields=("metadata",)) -> Optional[str]:
    """Describe the first body field of the wrong JSON type, if any."""
    for name in string_fields:
        if data.get(name) is not None and not isinstance(data[name], str):
            return f"{name} must be a string"
    for name in object_fields:
        if data.get(name) is not None and not isinstance(data[name], dict):
            return f"{name} must be an object"
    return None


# ============================================
# DEFINITION ENDPOINTS
# ============================================

@definitions_bp.route("", methods=["GET"])
def list_definitions():
    """
    List registered workflow definitions.

    Response: 200 OK
    """
    definitions = get_engine().list_definitions()
    return jsonify({
        "definitions": [d.to_dict() for d in definitions],
        "count": len(definitions),
    }), 200


@definitions_bp.route("/<workflow_type>", methods=["GET"])
def get_definition(workflow_type: str):
    """
    Get one workflow definition.

    Response: 200 OK
    """
    return jsonify(get_engine().get_definition(workflow_type).to_dict()), 200


# ============================================
# WORKFLOW ENDPOINTS
# ============================================

@workflows_bp.route("", methods=["POST"])
def create_workflow():
    """
    Create a new workflow instance.

    Request body:
    {
        "workflow_type": "orderFulfillment",
        "initial_step": "draft",        (optional)
        "workflow_id": "custom-id",     (optional)
        "entity_id": "order-123",       (optional)
        "entity_type": "order",         (optional)
        "metadata": {},                 (optional)
        "actor": "user-42"              (optional)
    }

    Response: 201 Created
    """
    data = request.get_json(silent=True)

    if not data or not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    workflow_type = data.get("workflow_type")
    if not workflow_type:
        return jsonify({"error": "workflow_type is required"}), 400

    type_error = _body_type_error(
        data, ["workflow_type", "initial_step", "workflow_id", "entity_id", "entity_type", "actor"],
    )
    if type_error:
        return jsonify({"error": type_error}), 400

    state = get_engine().create_workflow(
        workflow_type=workflow_type,
        initial_step=data.get("initial_step"),
        workflow_id=data.get("workflow_id"),
        entity_id=data.get("entity_id"),
        entity_type=data.get("entity_type"),
        metadata=data.get("metadata"),
        actor=data.get("actor") or "system",
    )
    return jsonify(state.to_dict()), 201


@workflows_bp.route("", methods=["GET"])
def list_workflows():
    """
    List workflow instances.

    Query params:
    - workflow_type: Filter by workflow type
    - active: Only workflows not in a terminal step (default false)

    Response: 200 OK
    """
    engine = get_engine()
    workflow_type = request.args.get("workflow_type")

    if _bool_arg("active"):
        workflows = engine.list_active_workflows(workflow_type)
    else:
        workflows = engine.list_workflows(workflow_type)

    return jsonify({
        "workflows": [w.to_dict() for w in workflows],
        "count": len(workflows),
    }), 200


@workflows_bp.route("/<workflow_id>", methods=["GET"])
def get_workflow(workflow_id: str):
    """
    Get current workflow state.

    Response: 200 OK
    """
    return jsonify(get_engine().get_state(workflow_id).to_dict()), 200


@workflows_bp.route("/<workflow_id>/history", methods=["GET"])
def get_workflow_history(workflow_id: str):
    """
    Get workflow history, oldest entry first.

    Response: 200 OK
    """
    history = get_engine().get_history(workflow_id)
    return jsonify({
        "workflow_id": workflow_id,
        "history": [entry.to_dict() for entry in history],
        "count": len(history),
    }), 200


@workflows_bp.route("/<workflow_id>/transition", methods=["POST"])
def transition_workflow(workflow_id: str):
    """
    Transition a workflow to another step.

    Request body:
    {
        "target_step": "payment_pending",
        "actor": "user-42",      (optional)
        "notes": "...",          (optional)
        "metadata": {}           (optional)
    }

    Response: 200 OK, 404 unknown workflow, 409 transition not allowed
    """
    data = request.get_json(silent=True)

    if not data or not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    target_step = data.get("target_step")
    if not target_step:
        return jsonify({"error": "target_step is required"}), 400

    type_error = _body_type_error(data, ["target_step", "actor", "notes"])
    if type_error:
        return jsonify({"error": type_error}), 400

    state = get_engine().transition(
        workflow_id,
        target_step,
        actor=data.get("actor") or "system",
        notes=data.get("notes"),
        metadata=data.get("metadata"),
    )
    return jsonify(state.to_dict()), 200


@workflows_bp.route("/<workflow_id>/requirements", methods=["GET"])
def get_requirements(workflow_id: str):
    """
    Check a step's requirements against the workflow metadata.

    Query params:
    - step: Step to check (default: current step)

    Response: 200 OK
    """
    engine = get_engine()
    step = request.args.get("step")
    check = engine.check_step_requirements(workflow_id, step)
    return jsonify({
        "workflow_id": workflow_id,
        "step": step or engine.get_state(workflow_id).current_step,
        "requirements": engine.get_step_requirements(workflow_id, step),
        **check.to_dict(),
    }), 200


@workflows_bp.route("/<workflow_id>/timeout", methods=["POST"])
def handle_timeout(workflow_id: str):
    """
    Apply the current step's timeout policy.

    Response: 200 OK with "applied" telling whether anything happened
    """
    engine = get_engine()
    state = engine.handle_step_timeout(workflow_id)
    return jsonify({
        "applied": state is not None,
        "workflow": (state or engine.get_state(workflow_id)).to_dict(),
    }), 200


# ============================================
# ANALYTICS ENDPOINTS
# ============================================

def _load_snapshots(workflow_type: str):
    analytics = get_analytics()
    # Validates the type before touching the snapshot source
    get_engine().get_definition(workflow_type)
    return analytics, analytics.load_snapshots(
        workflow_type, start=_datetime_arg("start"), end=_datetime_arg("end"),
    )


@analytics_bp.route("/<workflow_type>", methods=["GET"])
def get_workflow_analytics(workflow_type: str):
    """
    Full analytics dashboard payload for one workflow type.

    Query params:
    - start, end: ISO-8601 bounds on workflow creation time

    Response: 200 OK
    """
    get_engine().get_definition(workflow_type)
    payload = get_analytics().get_workflow_analytics(
        workflow_type, start=_datetime_arg("start"), end=_datetime_arg("end"),
    )
    return jsonify(payload), 200


@analytics_bp.route("/<workflow_type>/performance", methods=["GET"])
def get_performance(workflow_type: str):
    analytics, workflows = _load_snapshots(workflow_type)
    return jsonify(analytics.analyze_workflow_performance(workflows, workflow_type).to_dict()), 200


@analytics_bp.route("/<workflow_type>/patterns", methods=["GET"])
def get_patterns(workflow_type: str):
    analytics, workflows = _load_snapshots(workflow_type)
    return jsonify(analytics.analyze_transition_patterns(workflows, workflow_type).to_dict()), 200


@analytics_bp.route("/<workflow_type>/predictions", methods=["GET"])
def get_predictions(workflow_type: str):
    analytics, workflows = _load_snapshots(workflow_type)
    return jsonify(analytics.generate_predictive_analytics(workflows, workflow_type).to_dict()), 200


@analytics_bp.route("/<workflow_type>/recommendations", methods=["GET"])
def get_recommendations(workflow_type: str):
    analytics, workflows = _load_snapshots(workflow_type)
    insights = analytics.generate_optimization_recommendations(workflows, workflow_type)
    return jsonify({
        "insights": [i.to_dict() for i in insights],
        "count": len(insights),
    }), 200


# ============================================
# ROUTE REGISTRATION
# ============================================

def register_routes(app: Flask) -> None:
    """Register all blueprints with the Flask app."""
    app.register_blueprint(definitions_bp)
    app.register_blueprint(workflows_bp)
    app.register_blueprint(analytics_bp)
    logger.info("Routes registered")
