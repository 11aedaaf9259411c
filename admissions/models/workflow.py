"""
Admissions Workflow Service
Review-pipeline domain models.

Models:
    - ApplicationStage:          one stage instance per (application, stage_key)
    - ApplicationTimeline:       immutable, append-only workflow audit trail
    - ApplicationCommunication:  outbound correspondence recorded against an application

Architecture:
    Application ──1:N──▶ ApplicationStage        (exactly six, sequence 1..6)
    Application ──1:N──▶ ApplicationTimeline     (append-only)
    Application ──1:N──▶ ApplicationCommunication

Lifecycle states:
    ApplicationStage:  PENDING → IN_PROGRESS → COMPLETED  |  any → ON_HOLD
    Communication:     QUEUED on record; later statuses are set by the sender
"""

import json
from datetime import datetime, timezone

from sqlalchemy import event

from admissions.models import db

# ── Constants ────────────────────────────────────────────────────────────────

STAGE_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "ON_HOLD")

TIMELINE_EVENT_TYPES = (
    "WORKFLOW_INITIALIZED",
    "STAGE_ACTIVATED",
    "STAGE_STATUS_UPDATED",
    "STAGE_ASSIGNED",
    "COMMUNICATION_LOGGED",
    "WORKFLOW_COMPLETED",
)

DEFAULT_COMMUNICATION_STATUS = "QUEUED"


def _load_json(raw):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. ApplicationStage
# ═════════════════════════════════════════════════════════════════════════════


class ApplicationStage(db.Model):
    """
    One review stage of one application.

    Created once by the workflow initializer from the stage template
    catalogue; never deleted. ``sequence`` is copied from the template and
    never changes. ``version`` is the optimistic-concurrency counter: a
    writer holding an outdated snapshot fails with StaleDataError.
    """

    __tablename__ = "application_stages"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"),
        nullable=False, index=True,
    )

    stage_key = db.Column(
        db.String(50), nullable=False,
        comment="DOCUMENT_VERIFICATION | FINANCIAL_REVIEW | ... | ENROLMENT_PACK",
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    assigned_role = db.Column(db.String(50), nullable=False)
    assigned_user_id = db.Column(
        db.String(64), nullable=True,
        comment="NULL = owned by the role as a whole",
    )
    sequence = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | IN_PROGRESS | COMPLETED | ON_HOLD",
    )

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    payload = db.Column(
        db.Text, nullable=True,
        comment="Opaque JSON checklist / metadata, stored and returned uninterpreted",
    )

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_application_stages_app_sequence", "application_id", "sequence"),
        db.CheckConstraint(
            "status IN ('PENDING','IN_PROGRESS','COMPLETED','ON_HOLD')",
            name="ck_application_stage_status",
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "stage_key": self.stage_key,
            "name": self.name,
            "description": self.description,
            "assigned_role": self.assigned_role,
            "assigned_user_id": self.assigned_user_id,
            "sequence": self.sequence,
            "status": self.status,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "due_date": _iso(self.due_date),
            "payload": _load_json(self.payload),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ApplicationStage {self.id}: app={self.application_id} {self.stage_key} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ApplicationTimeline
# ═════════════════════════════════════════════════════════════════════════════


class ApplicationTimeline(db.Model):
    """
    Append-only workflow audit trail.

    One row per event. Rows are never updated or deleted; the mapper
    listeners below reject either attempt at flush time.
    ``performed_by_*`` are NULL for system-generated events.
    """

    __tablename__ = "application_timeline"
    __table_args__ = (
        db.Index("ix_application_timeline_app_created", "application_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"),
        nullable=False, index=True,
    )
    stage_key = db.Column(
        db.String(50), nullable=True,
        comment="NULL for workflow-wide events (communications)",
    )
    event_type = db.Column(db.String(40), nullable=False)
    performed_by_id = db.Column(db.String(64), nullable=True)
    performed_by_name = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    metadata_json = db.Column("metadata", db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def event_metadata(self):
        """Deserialise *metadata_json*; None when absent or unreadable."""
        return _load_json(self.metadata_json)

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "stage_key": self.stage_key,
            "event_type": self.event_type,
            "performed_by_id": self.performed_by_id,
            "performed_by_name": self.performed_by_name,
            "notes": self.notes,
            "metadata": self.event_metadata,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ApplicationTimeline {self.id}: app={self.application_id} {self.event_type}>"


@event.listens_for(ApplicationTimeline, "before_update")
def _reject_timeline_update(mapper, connection, target):
    raise RuntimeError(f"application_timeline row {target.id} is append-only")


@event.listens_for(ApplicationTimeline, "before_delete")
def _reject_timeline_delete(mapper, connection, target):
    raise RuntimeError(f"application_timeline row {target.id} is append-only")


# ═════════════════════════════════════════════════════════════════════════════
# 3. ApplicationCommunication
# ═════════════════════════════════════════════════════════════════════════════


class ApplicationCommunication(db.Model):
    """Outbound correspondence queued against an application (not sent here)."""

    __tablename__ = "application_communications"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"),
        nullable=False, index=True,
    )
    recipient_type = db.Column(
        db.String(30), nullable=False,
        comment="free text, e.g. PARENT, GUARDIAN, STAFF",
    )
    recipient_address = db.Column(db.String(255), nullable=False)
    channel = db.Column(
        db.String(20), nullable=False,
        comment="free text, e.g. EMAIL, SMS, WHATSAPP",
    )
    subject = db.Column(db.String(255), nullable=True)
    body = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default=DEFAULT_COMMUNICATION_STATUS,
        comment="QUEUED on record; updated by the sender",
    )
    metadata_json = db.Column("metadata", db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "recipient_type": self.recipient_type,
            "recipient_address": self.recipient_address,
            "channel": self.channel,
            "subject": self.subject,
            "body": self.body,
            "status": self.status,
            "metadata": _load_json(self.metadata_json),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ApplicationCommunication {self.id}: {self.channel} → {self.recipient_address} [{self.status}]>"
