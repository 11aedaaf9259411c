"""
Tests: HTTP surface of the admissions and workflow blueprints.

Uses shared fixtures from conftest.py: client, session (autouse rollback),
workflow, submitted, make_application, submission_payload.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from admissions.models import db
from admissions.models.workflow import ApplicationStage, ApplicationTimeline

BASE = "/api/v1/admissions"


def _stage_ids(application_id: int) -> list[int]:
    return list(
        db.session.execute(
            select(ApplicationStage.id)
            .where(ApplicationStage.application_id == application_id)
            .order_by(ApplicationStage.sequence)
        ).scalars()
    )


# ═════════════════════════════════════════════════════════════════════════════
# Health
# ═════════════════════════════════════════════════════════════════════════════


def test_health_ready(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_health_live_reports_workflow_engine(client):
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    checks = res.get_json()["checks"]
    assert checks["database"]["status"] == "ok"
    assert checks["workflow"]["stage_templates"] == 6


def test_request_id_is_echoed(client):
    res = client.get("/api/v1/health", headers={"X-Request-ID": "req-abc"})
    assert res.headers["X-Request-ID"] == "req-abc"
    assert "X-Request-Duration-Ms" in res.headers


def test_unknown_api_route_returns_json_404(client):
    res = client.get("/api/v1/nothing-here")
    assert res.status_code == 404
    assert res.get_json()["error"] == "Not found"


# ═════════════════════════════════════════════════════════════════════════════
# Intake
# ═════════════════════════════════════════════════════════════════════════════


def test_submit_application_returns_201_with_workflow_pointers(client, submission_payload):
    res = client.post(f"{BASE}/applications", json=submission_payload())

    assert res.status_code == 201
    body = res.get_json()
    assert body["success"] is True
    assert body["message"] == "Application submitted successfully"
    application = body["application"]
    assert application["id"] == body["application_id"]
    assert application["status"] == "PENDING"
    assert application["current_stage_key"] == "DOCUMENT_VERIFICATION"
    assert application["mother_address"] == "14 Marine Drive, Umhlanga"
    assert application["current_assignee_role"] == "SECRETARY"
    assert len(_stage_ids(body["application_id"])) == 6


def test_submit_application_validation_error_is_422(client, submission_payload):
    res = client.post(f"{BASE}/applications", json=submission_payload(agree_to_terms=False, year=""))

    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_CONSTRAINT"
    assert set(body["details"]) == {"agree_to_terms", "year"}


def test_submit_application_requires_parent_contact_details(client, submission_payload):
    payload = submission_payload(mother_address="", father_cell_phone=None)
    del payload["father_address"]

    res = client.post(f"{BASE}/applications", json=payload)

    assert res.status_code == 422
    assert set(res.get_json()["details"]) == {"mother_address", "father_address", "father_cell_phone"}


def test_submit_application_requires_json_object(client):
    res = client.post(f"{BASE}/applications", data="surname=Smith", content_type="text/plain")
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


def test_list_applications_newest_first(client, submission_payload):
    ids = [
        client.post(f"{BASE}/applications", json=submission_payload(surname=name)).get_json()["application_id"]
        for name in ("Adams", "Brown", "Cele")
    ]

    res = client.get(f"{BASE}/applications")
    assert res.status_code == 200
    assert [a["id"] for a in res.get_json()["applications"]] == list(reversed(ids))


def test_get_application_not_found(client):
    res = client.get(f"{BASE}/applications/999")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_update_application_status_does_not_touch_workflow(client, submitted):
    res = client.patch(
        f"{BASE}/applications/{submitted.id}",
        json={"status": "APPROVED", "notes": "Strong assessment"},
    )

    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "APPROVED"
    assert body["notes"] == "Strong assessment"
    assert body["current_stage_key"] == "DOCUMENT_VERIFICATION"
    assert body["current_stage_status"] == "PENDING"


@pytest.mark.parametrize("payload, status_code", [
    ({}, 400),
    ({"status": "WAITLISTED"}, 422),
])
def test_update_application_status_errors(client, submitted, payload, status_code):
    res = client.patch(f"{BASE}/applications/{submitted.id}", json=payload)
    assert res.status_code == status_code


def test_update_application_rejects_non_object_body(client, submitted):
    res = client.patch(f"{BASE}/applications/{submitted.id}", json=["APPROVED"])
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
    assert client.get(f"{BASE}/applications/{submitted.id}").get_json()["status"] == "PENDING"


def test_statistics(client, submission_payload):
    for grade in ("Grade 2", "Grade 2", "Grade 1"):
        client.post(f"{BASE}/applications", json=submission_payload(grade_applying=grade))
    first_id = client.get(f"{BASE}/applications").get_json()["applications"][-1]["id"]
    client.patch(f"{BASE}/applications/{first_id}", json={"status": "APPROVED"})

    res = client.get(f"{BASE}/statistics")
    assert res.status_code == 200
    stats = res.get_json()
    assert stats["total_applications"] == 3
    assert stats["pending_applications"] == 2
    assert stats["approved_applications"] == 1
    assert stats["enrolled_applications"] == 0
    assert stats["grade_distribution"] == [
        {"grade": "Grade 1", "count": 1},
        {"grade": "Grade 2", "count": 2},
    ]
    assert stats["by_current_stage"] == {"DOCUMENT_VERIFICATION": {"PENDING": 3}}
    this_month = datetime.now(timezone.utc).strftime("%Y-%m")
    assert stats["monthly_applications"] == [{"month": this_month, "count": 3}]


# ═════════════════════════════════════════════════════════════════════════════
# Workflow
# ═════════════════════════════════════════════════════════════════════════════


def test_stage_templates_endpoint(client):
    res = client.get(f"{BASE}/workflow/templates")
    assert res.status_code == 200
    templates = res.get_json()["templates"]
    assert [t["sequence"] for t in templates] == [1, 2, 3, 4, 5, 6]
    assert templates[1]["stage_key"] == "FINANCIAL_REVIEW"


def test_workflow_summary_endpoint(client, submitted):
    res = client.get(f"{BASE}/applications/{submitted.id}/workflow")
    assert res.status_code == 200
    body = res.get_json()
    assert len(body["stages"]) == 6
    assert body["timeline"][0]["event_type"] == "WORKFLOW_INITIALIZED"
    assert body["communications"] == []


def test_workflow_summary_unknown_application(client):
    assert client.get(f"{BASE}/applications/12345/workflow").status_code == 404


def test_initialize_endpoint_for_application_without_workflow(client, make_application):
    application = make_application()

    res = client.post(f"{BASE}/applications/{application.id}/workflow/initialize")

    assert res.status_code == 201
    assert [s["stage_key"] for s in res.get_json()["stages"]][0] == "DOCUMENT_VERIFICATION"


def test_initialize_endpoint_refuses_second_workflow(client, submitted):
    res = client.post(f"{BASE}/applications/{submitted.id}/workflow/initialize")
    assert res.status_code == 409
    assert len(_stage_ids(submitted.id)) == 6


def test_initialize_endpoint_unknown_application(client):
    assert client.post(f"{BASE}/applications/777/workflow/initialize").status_code == 404


def test_update_stage_status_uses_actor_headers(client, submitted):
    stage_id = _stage_ids(submitted.id)[0]

    res = client.patch(
        f"{BASE}/applications/{submitted.id}/workflow/stages/{stage_id}/status",
        json={"status": "COMPLETED", "notes": "All documents present"},
        headers={"X-User-Id": "sec-1", "X-User": "Ms Pillay"},
    )

    assert res.status_code == 200
    assert res.get_json()["status"] == "COMPLETED"

    entry = db.session.execute(
        select(ApplicationTimeline).where(
            ApplicationTimeline.application_id == submitted.id,
            ApplicationTimeline.event_type == "STAGE_STATUS_UPDATED",
        )
    ).scalar_one()
    assert entry.performed_by_id == "sec-1"
    assert entry.performed_by_name == "Ms Pillay"

    application = client.get(f"{BASE}/applications/{submitted.id}").get_json()
    assert application["current_stage_key"] == "FINANCIAL_REVIEW"


def test_body_actor_overrides_headers(client, submitted):
    stage_id = _stage_ids(submitted.id)[0]
    client.patch(
        f"{BASE}/applications/{submitted.id}/workflow/stages/{stage_id}/status",
        json={"status": "IN_PROGRESS", "actor_user_id": "body-user"},
        headers={"X-User-Id": "header-user"},
    )
    entry = db.session.execute(
        select(ApplicationTimeline).where(ApplicationTimeline.event_type == "STAGE_STATUS_UPDATED")
    ).scalar_one()
    assert entry.performed_by_id == "body-user"


@pytest.mark.parametrize("payload, status_code", [
    ({}, 400),
    ({"status": "ARCHIVED"}, 422),
])
def test_update_stage_status_errors(client, submitted, payload, status_code):
    stage_id = _stage_ids(submitted.id)[0]
    res = client.patch(
        f"{BASE}/applications/{submitted.id}/workflow/stages/{stage_id}/status", json=payload,
    )
    assert res.status_code == status_code


@pytest.mark.parametrize("suffix", ["status", "assignment"])
def test_stage_endpoints_reject_non_object_body(client, submitted, suffix):
    stage_id = _stage_ids(submitted.id)[0]
    res = client.patch(
        f"{BASE}/applications/{submitted.id}/workflow/stages/{stage_id}/{suffix}",
        json=["COMPLETED"],
    )

    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
    stage = db.session.get(ApplicationStage, stage_id)
    assert stage.status == "PENDING"
    assert stage.assigned_role == "SECRETARY"


def test_update_stage_of_other_application_is_404(client, submitted, make_application):
    other = make_application()
    stage_id = _stage_ids(submitted.id)[0]
    res = client.patch(
        f"{BASE}/applications/{other.id}/workflow/stages/{stage_id}/status",
        json={"status": "COMPLETED"},
    )
    assert res.status_code == 404


def test_concurrent_modification_is_409(client, submitted, workflow, monkeypatch):
    def _stale(*args, **kwargs):
        raise StaleDataError("UPDATE statement on table 'application_stages' expected to update 1 row(s)")

    monkeypatch.setattr(workflow, "update_stage_status", _stale)
    stage_id = _stage_ids(submitted.id)[0]

    res = client.patch(
        f"{BASE}/applications/{submitted.id}/workflow/stages/{stage_id}/status",
        json={"status": "COMPLETED"},
    )
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_STATE"


def test_assign_stage_endpoint(client, submitted):
    stage_id = _stage_ids(submitted.id)[0]

    res = client.patch(
        f"{BASE}/applications/{submitted.id}/workflow/stages/{stage_id}/assignment",
        json={"assigned_role": "PRINCIPAL", "assigned_user_id": "p-7"},
    )

    assert res.status_code == 200
    assert res.get_json()["assigned_user_id"] == "p-7"
    application = client.get(f"{BASE}/applications/{submitted.id}").get_json()
    assert application["current_assignee_role"] == "PRINCIPAL"
    assert application["current_assignee_id"] == "p-7"


def test_assign_stage_requires_a_target(client, submitted):
    stage_id = _stage_ids(submitted.id)[0]
    res = client.patch(
        f"{BASE}/applications/{submitted.id}/workflow/stages/{stage_id}/assignment", json={},
    )
    assert res.status_code == 422


def test_log_communication_endpoint(client, submitted):
    res = client.post(
        f"{BASE}/applications/{submitted.id}/communications",
        json={
            "recipient_type": "PARENT",
            "recipient_address": "sipho.dlamini@gmail.com",
            "channel": "EMAIL",
            "body": "Please bring the learner's latest report.",
        },
    )

    assert res.status_code == 201
    body = res.get_json()
    assert body["status"] == "QUEUED"
    assert body["application_id"] == submitted.id


def test_log_communication_endpoint_validation(client, submitted):
    res = client.post(
        f"{BASE}/applications/{submitted.id}/communications",
        json={"recipient_type": "PARENT", "channel": "PIGEON"},
    )
    assert res.status_code == 422
    assert set(res.get_json()["details"]) == {"recipient_address", "body"}


def test_log_communication_endpoint_accepts_any_channel(client, submitted):
    res = client.post(
        f"{BASE}/applications/{submitted.id}/communications",
        json={
            "recipient_type": "guardian",
            "recipient_address": "+27821234567",
            "channel": "WHATSAPP",
            "body": "Assessment confirmed for Friday 08:00.",
        },
    )

    assert res.status_code == 201
    body = res.get_json()
    assert body["channel"] == "WHATSAPP"
    assert body["recipient_type"] == "guardian"
    assert body["status"] == "QUEUED"


# ═════════════════════════════════════════════════════════════════════════════
# CLI
# ═════════════════════════════════════════════════════════════════════════════


def test_workflow_templates_command(app):
    result = app.test_cli_runner().invoke(args=["workflow-templates"])
    assert result.exit_code == 0
    assert "1. DOCUMENT_VERIFICATION" in result.output
    assert "6. ENROLMENT_PACK" in result.output


def test_backfill_workflows_command(app, make_application):
    orphan = make_application()
    runner = app.test_cli_runner()

    dry = runner.invoke(args=["backfill-workflows", "--dry-run"])
    assert dry.exit_code == 0
    assert f"Would initialise 1 workflow(s): {orphan.id}" in dry.output
    assert _stage_ids(orphan.id) == []

    real = runner.invoke(args=["backfill-workflows"])
    assert real.exit_code == 0
    assert f"Initialised 1 workflow(s): {orphan.id}" in real.output
    assert len(_stage_ids(orphan.id)) == 6
