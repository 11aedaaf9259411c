"""
Communication log for admissions correspondence.

Records the intent to contact a parent, guardian or staff member about an
application. Nothing here sends anything: delivery belongs to whichever
collaborator dispatches the message, which later moves ``status`` on from
QUEUED.

Every recorded communication is paired with a COMMUNICATION_LOGGED timeline
entry that is workflow-wide (stage_key = NULL).
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.orm import Session

from admissions.core.exceptions import ValidationError
from admissions.models import db
from admissions.models.workflow import (
    DEFAULT_COMMUNICATION_STATUS,
    ApplicationCommunication,
)
from admissions.services.timeline_service import append_event, serialize_metadata

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("recipient_type", "recipient_address", "channel", "body")


def validate_communication(data: dict) -> dict:
    """Check and normalise a communication payload.

    Returns a new dict with stripped strings and status defaulted to QUEUED.
    Channel, status and recipient type are stored exactly as supplied.
    Raises ValidationError listing every offending field.
    """
    errors: dict[str, str] = {}
    cleaned: dict = {}

    for name in _REQUIRED_FIELDS:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            errors[name] = "required"
        else:
            cleaned[name] = value.strip()

    status = data.get("status")
    if status is None:
        cleaned["status"] = DEFAULT_COMMUNICATION_STATUS
    elif not isinstance(status, str) or not status.strip():
        errors["status"] = "must be a non-empty string"
    else:
        cleaned["status"] = status.strip()

    if cleaned.get("channel", "").upper() == "EMAIL" and "recipient_address" in cleaned:
        try:
            valid = validate_email(cleaned["recipient_address"], check_deliverability=False)
            cleaned["recipient_address"] = valid.normalized
        except EmailNotValidError as e:
            errors["recipient_address"] = f"invalid email: {e}"

    if errors:
        raise ValidationError("Invalid communication payload", details=errors)

    subject = data.get("subject")
    cleaned["subject"] = subject.strip() if isinstance(subject, str) and subject.strip() else None
    cleaned["metadata"] = data.get("metadata")
    return cleaned


def record_communication(session: Session, application_id: int, cleaned: dict) -> ApplicationCommunication:
    """Insert the communication row and its paired timeline entry.

    *cleaned* must come from validate_communication(). Flushes only.
    """
    communication = ApplicationCommunication(
        application_id=application_id,
        recipient_type=cleaned["recipient_type"],
        recipient_address=cleaned["recipient_address"],
        channel=cleaned["channel"],
        subject=cleaned["subject"],
        body=cleaned["body"],
        status=cleaned["status"],
        metadata_json=serialize_metadata(cleaned["metadata"]),
    )
    session.add(communication)
    session.flush()

    append_event(
        session,
        application_id=application_id,
        stage_key=None,
        event_type="COMMUNICATION_LOGGED",
        notes=f"{cleaned['channel']} queued for {cleaned['recipient_address']}",
        metadata=cleaned["metadata"],
    )
    return communication


def list_communications(application_id: int, session: Session | None = None) -> list[ApplicationCommunication]:
    """Return every communication for an application, newest first."""
    session = session or db.session
    return list(
        session.execute(
            select(ApplicationCommunication)
            .where(ApplicationCommunication.application_id == application_id)
            .order_by(ApplicationCommunication.created_at.desc(), ApplicationCommunication.id.desc())
        ).scalars()
    )
