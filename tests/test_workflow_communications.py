"""
Tests: communication log and the workflow summary read model.
"""

import pytest
from sqlalchemy import func, select

from admissions.core.exceptions import NotFoundError, ValidationError
from admissions.models import db
from admissions.models.workflow import ApplicationCommunication, ApplicationTimeline
from admissions.services.communication_service import list_communications, validate_communication


def _payload(**overrides) -> dict:
    data = {
        "recipient_type": "parent",
        "recipient_address": "nomsa.dlamini@gmail.com",
        "channel": "email",
        "subject": "  Assessment invitation  ",
        "body": "Your child is invited to an assessment on Friday.",
        "metadata": {"template": "ASSESSMENT_INVITE"},
    }
    data.update(overrides)
    return data


def _count(model) -> int:
    return db.session.execute(select(func.count(model.id))).scalar()


# ── Validation ───────────────────────────────────────────────────────────────


def test_validate_strips_fields_and_defaults_status():
    cleaned = validate_communication(_payload())
    assert cleaned["channel"] == "email"
    assert cleaned["recipient_type"] == "parent"
    assert cleaned["status"] == "QUEUED"
    assert cleaned["subject"] == "Assessment invitation"
    assert cleaned["metadata"] == {"template": "ASSESSMENT_INVITE"}


def test_validate_keeps_channel_and_status_vocabulary_of_the_sender():
    cleaned = validate_communication(
        _payload(channel="WHATSAPP", recipient_address="+27821234567", status="DELIVERED"),
    )
    assert cleaned["channel"] == "WHATSAPP"
    assert cleaned["status"] == "DELIVERED"


def test_validate_reports_every_bad_field():
    with pytest.raises(ValidationError) as exc:
        validate_communication(_payload(channel="  ", body="  ", status=""))
    assert set(exc.value.details) == {"channel", "body", "status"}


def test_validate_checks_email_addresses_only_for_email_channel():
    with pytest.raises(ValidationError) as exc:
        validate_communication(_payload(recipient_address="nomsa at gmail"))
    assert "recipient_address" in exc.value.details

    cleaned = validate_communication(_payload(channel="SMS", recipient_address="0821234567"))
    assert cleaned["recipient_address"] == "0821234567"


# ── Recording ────────────────────────────────────────────────────────────────


def test_log_communication_records_row_and_timeline_entry(workflow, submitted):
    communication = workflow.log_communication(submitted.id, _payload())

    assert communication.id is not None
    assert communication.status == "QUEUED"
    assert communication.channel == "email"
    assert communication.recipient_type == "parent"
    assert communication.to_dict()["metadata"] == {"template": "ASSESSMENT_INVITE"}

    entry = db.session.execute(
        select(ApplicationTimeline).where(
            ApplicationTimeline.application_id == submitted.id,
            ApplicationTimeline.event_type == "COMMUNICATION_LOGGED",
        )
    ).scalar_one()
    assert entry.stage_key is None
    assert entry.performed_by_id is None
    assert entry.notes == "email queued for nomsa.dlamini@gmail.com"


def test_log_communication_accepts_explicit_status(workflow, submitted):
    communication = workflow.log_communication(
        submitted.id, _payload(channel="SMS", recipient_address="0821234567", status="SENT"),
    )
    assert communication.channel == "SMS"
    assert communication.status == "SENT"


def test_invalid_communication_writes_nothing(workflow, submitted):
    before = _count(ApplicationTimeline)
    with pytest.raises(ValidationError):
        workflow.log_communication(submitted.id, _payload(recipient_type=None))
    assert _count(ApplicationCommunication) == 0
    assert _count(ApplicationTimeline) == before


def test_communication_for_unknown_application_is_not_found(workflow):
    with pytest.raises(NotFoundError):
        workflow.log_communication(4040, _payload())
    assert _count(ApplicationCommunication) == 0


def test_communications_listed_newest_first(workflow, submitted):
    first = workflow.log_communication(submitted.id, _payload(subject="First"))
    second = workflow.log_communication(submitted.id, _payload(subject="Second"))

    assert [c.id for c in list_communications(submitted.id)] == [second.id, first.id]


# ── Summary ──────────────────────────────────────────────────────────────────


def test_summary_combines_stages_timeline_and_communications(workflow, submitted):
    workflow.log_communication(submitted.id, _payload())

    summary = workflow.get_workflow_summary(submitted.id)

    assert summary["application_id"] == submitted.id
    assert [s["sequence"] for s in summary["stages"]] == [1, 2, 3, 4, 5, 6]
    assert [e["event_type"] for e in summary["timeline"]] == [
        "COMMUNICATION_LOGGED",
        "WORKFLOW_INITIALIZED",
    ]
    assert len(summary["communications"]) == 1
    assert summary["communications"][0]["subject"] == "Assessment invitation"


def test_summary_of_application_without_workflow_is_empty(workflow, make_application):
    application = make_application()
    summary = workflow.get_workflow_summary(application.id)
    assert summary["stages"] == []
    assert summary["timeline"] == []
    assert summary["communications"] == []


def test_summary_of_unknown_application_is_not_found(workflow):
    with pytest.raises(NotFoundError):
        workflow.get_workflow_summary(31337)
