"""
Admissions Workflow Blueprint.

Staff-console endpoints for the six-stage admissions review pipeline.

Endpoints:
    GET    /api/v1/admissions/workflow/templates
           Returns: 200 with the ordered stage catalogue.

    GET    /api/v1/admissions/applications/<aid>/workflow
           Returns: 200 {stages, timeline, communications}.

    POST   /api/v1/admissions/applications/<aid>/workflow/initialize
           Returns: 201 with the created stages; 409 if stages already exist.

    PATCH  /api/v1/admissions/applications/<aid>/workflow/stages/<sid>/status
           Body: {"status": "PENDING|IN_PROGRESS|COMPLETED|ON_HOLD",
                  "notes": "...", "metadata": {...},
                  "actor_user_id": "...", "actor_display_name": "..."}
           Returns: 200 with the updated stage.

    PATCH  /api/v1/admissions/applications/<aid>/workflow/stages/<sid>/assignment
           Body: {"assigned_role": "...", "assigned_user_id": "..." | null, ...}
           Returns: 200 with the updated stage.

    POST   /api/v1/admissions/applications/<aid>/communications
           Body: {"recipient_type", "recipient_address", "channel", "body",
                  "subject"?, "status"?, "metadata"?}
           Returns: 201 with the communication.

Layer contract:
    - Blueprint: parse JSON, fill in the actor, call ApplicationWorkflow.
    - NO db.session calls here — every write is owned by the workflow service.
    - Role checks happen upstream; this layer only records who acted.
"""

import logging

from flask import Blueprint, jsonify, request

from admissions.core.exceptions import ConflictError
from admissions.services import application_service
from admissions.services.workflow_service import get_workflow
from admissions.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1/admissions")
register_service_error_handlers(workflow_bp)


# ── Helpers ────────────────────────────────────────────────────────────────────


def _payload_with_actor() -> dict | None:
    """JSON body with actor fields defaulted from the X-User-Id / X-User headers.

    Returns None when the body is not a JSON object.
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None
    data = dict(data)
    if not data.get("actor_user_id"):
        data["actor_user_id"] = request.headers.get("X-User-Id") or None
    if not data.get("actor_display_name"):
        data["actor_display_name"] = request.headers.get("X-User") or None
    return data


# ── Routes ─────────────────────────────────────────────────────────────────────


@workflow_bp.route("/workflow/templates", methods=["GET"])
def list_stage_templates():
    """Ordered stage catalogue (read-only)."""
    templates = get_workflow().get_stage_templates()
    return jsonify({"templates": [t.to_dict() for t in templates]}), 200


@workflow_bp.route("/applications/<int:application_id>/workflow", methods=["GET"])
def get_workflow_summary(application_id: int):
    """Stages, timeline and communications for one application."""
    return jsonify(get_workflow().get_workflow_summary(application_id)), 200


@workflow_bp.route("/applications/<int:application_id>/workflow/initialize", methods=["POST"])
def initialize_workflow(application_id: int):
    """Create the workflow for an application that was stored without one."""
    workflow = get_workflow()
    application_service.get_application(application_id)
    if workflow.has_workflow(application_id):
        raise ConflictError("ApplicationStage", "application_id", str(application_id))

    stages = workflow.initialize_workflow(application_id)
    return jsonify({"stages": [s.to_dict() for s in stages]}), 201


@workflow_bp.route(
    "/applications/<int:application_id>/workflow/stages/<int:stage_id>/status",
    methods=["PATCH"],
)
def update_stage_status(application_id: int, stage_id: int):
    """Move a stage to a new status; completion cascades to the next stage."""
    data = _payload_with_actor()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "JSON object body is required.")
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "Field 'status' is required.")

    stage = get_workflow().update_stage_status(application_id, stage_id, data)
    return jsonify(stage.to_dict()), 200


@workflow_bp.route(
    "/applications/<int:application_id>/workflow/stages/<int:stage_id>/assignment",
    methods=["PATCH"],
)
def assign_stage(application_id: int, stage_id: int):
    """Reassign a stage to a role and/or individual."""
    data = _payload_with_actor()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "JSON object body is required.")
    stage = get_workflow().assign_stage(application_id, stage_id, data)
    return jsonify(stage.to_dict()), 200


@workflow_bp.route("/applications/<int:application_id>/communications", methods=["POST"])
def log_communication(application_id: int):
    """Record correspondence queued by a delivery collaborator."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON object body is required.")

    communication = get_workflow().log_communication(application_id, data)
    return jsonify(communication.to_dict()), 201
