"""
Admissions Workflow Service
Application intake model.

Models:
    - Application: a learner's admission application plus the denormalised
      pointer columns that mirror its currently active workflow stage.

The pointer columns (current_stage_key, current_stage_status,
current_assignee_role, current_assignee_id, next_action_due) are a cache.
They are only ever written by ApplicationWorkflow, in the same transaction
as the stage / timeline writes they mirror.
"""

from datetime import datetime, timezone

from admissions.models import db

# ── Constants ────────────────────────────────────────────────────────────────

APPLICATION_STATUSES = ("PENDING", "UNDER_REVIEW", "APPROVED", "REJECTED", "ENROLLED")


class Application(db.Model):
    """Admission application submitted by a parent or guardian."""

    __tablename__ = "applications"

    id = db.Column(db.Integer, primary_key=True)

    # Learner
    surname = db.Column(db.String(100), nullable=False)
    christian_name = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=False)
    place_of_birth = db.Column(db.String(150), nullable=False)
    grade_applying = db.Column(db.String(30), nullable=False, index=True)
    year = db.Column(db.String(10), nullable=False)
    home_language = db.Column(db.String(50), nullable=True)
    current_school = db.Column(db.String(200), nullable=True)
    last_grade_passed = db.Column(db.String(30), nullable=True)
    learner_address = db.Column(db.Text, nullable=True)

    # Parents
    mother_full_name = db.Column(db.String(200), nullable=False)
    mother_address = db.Column(db.Text, nullable=True)
    mother_home_phone = db.Column(db.String(30), nullable=True)
    mother_work_phone = db.Column(db.String(30), nullable=True)
    mother_cell_phone = db.Column(db.String(30), nullable=True)
    mother_email = db.Column(db.String(255), nullable=True)
    father_full_name = db.Column(db.String(200), nullable=False)
    father_address = db.Column(db.Text, nullable=True)
    father_home_phone = db.Column(db.String(30), nullable=True)
    father_work_phone = db.Column(db.String(30), nullable=True)
    father_cell_phone = db.Column(db.String(30), nullable=True)
    father_email = db.Column(db.String(255), nullable=True)

    # Overall admission outcome (independent of the review pipeline)
    status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | UNDER_REVIEW | APPROVED | REJECTED | ENROLLED",
    )
    notes = db.Column(db.Text, nullable=True)

    # Workflow pointers (cache of the active ApplicationStage)
    current_stage_key = db.Column(db.String(50), nullable=True, index=True)
    current_stage_status = db.Column(db.String(20), nullable=True)
    current_assignee_role = db.Column(db.String(50), nullable=True, index=True)
    current_assignee_id = db.Column(db.String(64), nullable=True)
    next_action_due = db.Column(db.DateTime(timezone=True), nullable=True)

    submitted_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING','UNDER_REVIEW','APPROVED','REJECTED','ENROLLED')",
            name="ck_application_status",
        ),
    )

    def workflow_pointer(self) -> dict:
        """Return the five pointer columns as a dict (handy for comparisons)."""
        return {
            "current_stage_key": self.current_stage_key,
            "current_stage_status": self.current_stage_status,
            "current_assignee_role": self.current_assignee_role,
            "current_assignee_id": self.current_assignee_id,
            "next_action_due": self.next_action_due,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "surname": self.surname,
            "christian_name": self.christian_name,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "place_of_birth": self.place_of_birth,
            "grade_applying": self.grade_applying,
            "year": self.year,
            "home_language": self.home_language,
            "current_school": self.current_school,
            "last_grade_passed": self.last_grade_passed,
            "learner_address": self.learner_address,
            "mother_full_name": self.mother_full_name,
            "mother_address": self.mother_address,
            "mother_home_phone": self.mother_home_phone,
            "mother_work_phone": self.mother_work_phone,
            "mother_cell_phone": self.mother_cell_phone,
            "mother_email": self.mother_email,
            "father_full_name": self.father_full_name,
            "father_address": self.father_address,
            "father_home_phone": self.father_home_phone,
            "father_work_phone": self.father_work_phone,
            "father_cell_phone": self.father_cell_phone,
            "father_email": self.father_email,
            "status": self.status,
            "notes": self.notes,
            "current_stage_key": self.current_stage_key,
            "current_stage_status": self.current_stage_status,
            "current_assignee_role": self.current_assignee_role,
            "current_assignee_id": self.current_assignee_id,
            "next_action_due": self.next_action_due.isoformat() if self.next_action_due else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Application {self.id}: {self.surname}, {self.christian_name} [{self.status}]>"
