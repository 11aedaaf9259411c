"""
Admissions Intake Blueprint.

Endpoints:
    POST   /api/v1/admissions/applications          – submit (creates workflow too)
    GET    /api/v1/admissions/applications          – list, newest first
    GET    /api/v1/admissions/applications/<aid>    – single application
    PATCH  /api/v1/admissions/applications/<aid>    – overall status + notes
    GET    /api/v1/admissions/statistics            – dashboard counters

Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from admissions.services import application_service
from admissions.services.workflow_service import get_workflow
from admissions.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

admissions_bp = Blueprint("admissions", __name__, url_prefix="/api/v1/admissions")
register_service_error_handlers(admissions_bp)


@admissions_bp.route("/applications", methods=["POST"])
def submit_application():
    """Public intake form submission."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON object body is required.")

    application = application_service.submit_application(data, get_workflow())
    return jsonify({
        "success": True,
        "message": "Application submitted successfully",
        "application_id": application.id,
        "application": application.to_dict(),
    }), 201


@admissions_bp.route("/applications", methods=["GET"])
def list_applications():
    applications = application_service.list_applications()
    return jsonify({"applications": [a.to_dict() for a in applications]}), 200


@admissions_bp.route("/applications/<int:application_id>", methods=["GET"])
def get_application(application_id: int):
    application = application_service.get_application(application_id)
    return jsonify(application.to_dict()), 200


@admissions_bp.route("/applications/<int:application_id>", methods=["PATCH"])
def update_application(application_id: int):
    """Set the overall admission outcome; does not move workflow stages."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON object body is required.")
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "Field 'status' is required.")

    application = application_service.update_application_status(
        application_id, status, data.get("notes"),
    )
    return jsonify(application.to_dict()), 200


@admissions_bp.route("/statistics", methods=["GET"])
def statistics():
    return jsonify(application_service.get_statistics()), 200
