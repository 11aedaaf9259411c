"""admissions_workflow

Creates the admissions intake and review-pipeline tables:
  - applications                — intake form + cached workflow pointers
  - application_stages          — six review stages per application (versioned)
  - application_timeline        — append-only workflow audit trail
  - application_communications  — correspondence queued against an application

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1d2m3s4w501
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1d2m3s4w501'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Application ───────────────────────────────────────────────────────
    if "applications" not in existing:
        op.create_table(
            "applications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("surname", sa.String(length=100), nullable=False),
            sa.Column("christian_name", sa.String(length=100), nullable=False),
            sa.Column("date_of_birth", sa.Date(), nullable=False),
            sa.Column("place_of_birth", sa.String(length=150), nullable=False),
            sa.Column("grade_applying", sa.String(length=30), nullable=False),
            sa.Column("year", sa.String(length=10), nullable=False),
            sa.Column("home_language", sa.String(length=50), nullable=True),
            sa.Column("current_school", sa.String(length=200), nullable=True),
            sa.Column("last_grade_passed", sa.String(length=30), nullable=True),
            sa.Column("learner_address", sa.Text(), nullable=True),
            sa.Column("mother_full_name", sa.String(length=200), nullable=False),
            sa.Column("mother_address", sa.Text(), nullable=True),
            sa.Column("mother_home_phone", sa.String(length=30), nullable=True),
            sa.Column("mother_work_phone", sa.String(length=30), nullable=True),
            sa.Column("mother_cell_phone", sa.String(length=30), nullable=True),
            sa.Column("mother_email", sa.String(length=255), nullable=True),
            sa.Column("father_full_name", sa.String(length=200), nullable=False),
            sa.Column("father_address", sa.Text(), nullable=True),
            sa.Column("father_home_phone", sa.String(length=30), nullable=True),
            sa.Column("father_work_phone", sa.String(length=30), nullable=True),
            sa.Column("father_cell_phone", sa.String(length=30), nullable=True),
            sa.Column("father_email", sa.String(length=255), nullable=True),
            sa.Column(
                "status", sa.String(length=20), nullable=False,
                server_default="PENDING",
                comment="PENDING | UNDER_REVIEW | APPROVED | REJECTED | ENROLLED",
            ),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("current_stage_key", sa.String(length=50), nullable=True),
            sa.Column("current_stage_status", sa.String(length=20), nullable=True),
            sa.Column("current_assignee_role", sa.String(length=50), nullable=True),
            sa.Column("current_assignee_id", sa.String(length=64), nullable=True),
            sa.Column("next_action_due", sa.DateTime(timezone=True), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "status IN ('PENDING','UNDER_REVIEW','APPROVED','REJECTED','ENROLLED')",
                name="ck_application_status",
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_applications_grade_applying", "applications", ["grade_applying"])
        op.create_index("ix_applications_current_stage_key", "applications", ["current_stage_key"])
        op.create_index("ix_applications_current_assignee_role", "applications", ["current_assignee_role"])

    # ── ApplicationStage ──────────────────────────────────────────────────
    if "application_stages" not in existing:
        op.create_table(
            "application_stages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("stage_key", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("assigned_role", sa.String(length=50), nullable=False),
            sa.Column(
                "assigned_user_id", sa.String(length=64), nullable=True,
                comment="NULL = owned by the role as a whole",
            ),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column(
                "status", sa.String(length=20), nullable=False,
                server_default="PENDING",
                comment="PENDING | IN_PROGRESS | COMPLETED | ON_HOLD",
            ),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("payload", sa.Text(), nullable=True),
            sa.Column(
                "version", sa.Integer(), nullable=False,
                comment="Optimistic concurrency counter.",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "status IN ('PENDING','IN_PROGRESS','COMPLETED','ON_HOLD')",
                name="ck_application_stage_status",
            ),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_application_stages_application_id", "application_stages", ["application_id"]
        )
        op.create_index(
            "ix_application_stages_app_sequence", "application_stages",
            ["application_id", "sequence"],
        )

    # ── ApplicationTimeline ───────────────────────────────────────────────
    if "application_timeline" not in existing:
        op.create_table(
            "application_timeline",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("stage_key", sa.String(length=50), nullable=True),
            sa.Column("event_type", sa.String(length=40), nullable=False),
            sa.Column("performed_by_id", sa.String(length=64), nullable=True),
            sa.Column("performed_by_name", sa.String(length=200), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("metadata", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_application_timeline_application_id", "application_timeline", ["application_id"]
        )
        op.create_index(
            "ix_application_timeline_app_created", "application_timeline",
            ["application_id", "created_at"],
        )

    # ── ApplicationCommunication ──────────────────────────────────────────
    if "application_communications" not in existing:
        op.create_table(
            "application_communications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("recipient_type", sa.String(length=30), nullable=False),
            sa.Column("recipient_address", sa.String(length=255), nullable=False),
            sa.Column("channel", sa.String(length=20), nullable=False),
            sa.Column("subject", sa.String(length=255), nullable=True),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column(
                "status", sa.String(length=20), nullable=False,
                server_default="QUEUED",
                comment="QUEUED on record; updated by the sender",
            ),
            sa.Column("metadata", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_application_communications_application_id",
            "application_communications", ["application_id"],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    if "application_communications" in existing:
        op.drop_index(
            "ix_application_communications_application_id",
            table_name="application_communications",
        )
        op.drop_table("application_communications")

    if "application_timeline" in existing:
        op.drop_index("ix_application_timeline_app_created", table_name="application_timeline")
        op.drop_index("ix_application_timeline_application_id", table_name="application_timeline")
        op.drop_table("application_timeline")

    if "application_stages" in existing:
        op.drop_index("ix_application_stages_app_sequence", table_name="application_stages")
        op.drop_index("ix_application_stages_application_id", table_name="application_stages")
        op.drop_table("application_stages")

    if "applications" in existing:
        op.drop_index("ix_applications_current_assignee_role", table_name="applications")
        op.drop_index("ix_applications_current_stage_key", table_name="applications")
        op.drop_index("ix_applications_grade_applying", table_name="applications")
        op.drop_table("applications")
