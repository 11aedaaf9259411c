"""
Admissions Application Workflow — Service Layer.

Drives an application through the six-stage review pipeline defined in
stage_templates.py:

    DOCUMENT_VERIFICATION → FINANCIAL_REVIEW → ASSESSMENT_SCHEDULING
        → ASSESSMENT_OUTCOME → FINAL_DECISION → ENROLMENT_PACK

Business logic for:
    - Initialisation:  one ApplicationStage per template, pointers aimed at stage 1
    - Status updates:  PENDING | IN_PROGRESS | COMPLETED | ON_HOLD with timestamps
    - Cascade:         completing a stage points the application at the next sequence,
                       completing the last one finishes the workflow
    - Assignment:      role / individual reassignment, mirrored only for the current stage
    - Communications:  queued correspondence plus its timeline entry
    - Summary:         stages + timeline + communications for staff views

Every mutation writes a timeline row and runs in exactly one unit of work
(see unit_of_work.py). Nothing here authorises the actor: callers check
roles first and pass the actor identity in for the audit trail.

Pointer rule:
    A non-completing status update re-syncs the Application's current_* columns
    to the updated stage; a completion moves them to the next sequence (or to
    the terminal state). Assignment only mirrors into them for the stage they
    already point at.

Usage:
    workflow = ApplicationWorkflow.init_app(app)      # once, in create_app
    workflow = get_workflow()                         # inside a request
    workflow.update_stage_status(app_id, stage_id, {"status": "COMPLETED"})
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable

from flask import Flask, current_app
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from admissions.core.exceptions import NotFoundError, ValidationError, WorkflowIntegrityError
from admissions.models import db
from admissions.models.application import Application
from admissions.models.workflow import STAGE_STATUSES, ApplicationStage
from admissions.services import communication_service, timeline_service
from admissions.services.stage_templates import (
    StageTemplate,
    add_business_days,
    get_stage_order,
    get_stage_templates,
)
from admissions.services.unit_of_work import OwnTransaction, UnitOfWork

logger = logging.getLogger(__name__)

EXTENSION_KEY = "admissions_workflow"


def get_workflow() -> "ApplicationWorkflow":
    """Return the ApplicationWorkflow registered on the current app."""
    return current_app.extensions[EXTENSION_KEY]


class ApplicationWorkflow:
    """
    Admissions review workflow engine.

    Constructed once per application process by init_app() and handed to
    the HTTP layer through app.extensions. Holds no per-request state.

    Args:
        session_factory: Returns the Session used when a call opens its own
            transaction, and for reads. Defaults to Flask-SQLAlchemy's db.session.
        lock_stage_rows: Load stages with SELECT ... FOR UPDATE before mutating.
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        lock_stage_rows: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory or (lambda: db.session)
        self.lock_stage_rows = lock_stage_rows
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def init_app(cls, app: Flask) -> "ApplicationWorkflow":
        """Build the engine from app config and register it on *app*."""
        workflow = cls(lock_stage_rows=app.config.get("WORKFLOW_LOCK_STAGE_ROWS", True))
        app.extensions[EXTENSION_KEY] = workflow
        logger.info(
            "ApplicationWorkflow initialized with %d stage templates (row locking %s)",
            len(get_stage_templates()),
            "on" if workflow.lock_stage_rows else "off",
        )
        return workflow

    # ── Catalogue passthrough ────────────────────────────────────────────

    def get_stage_templates(self) -> list[StageTemplate]:
        return get_stage_templates()

    def get_stage_order(self, stage_key: str) -> int | None:
        return get_stage_order(stage_key)

    # ── Internals ────────────────────────────────────────────────────────

    def _unit_of_work(self, uow: UnitOfWork | None) -> UnitOfWork:
        return uow if uow is not None else OwnTransaction(self._session_factory())

    def _get_application(self, session: Session, application_id: int) -> Application:
        application = session.get(Application, application_id)
        if application is None:
            raise NotFoundError(resource="Application", resource_id=application_id)
        return application

    def _load_stage(self, session: Session, application_id: int, stage_id: int) -> ApplicationStage:
        """Fetch a stage for mutation and verify it belongs to the application."""
        stage = session.get(
            ApplicationStage,
            stage_id,
            with_for_update=True if self.lock_stage_rows else None,
        )
        if stage is None or stage.application_id != application_id:
            raise NotFoundError(
                resource="ApplicationStage", resource_id=stage_id, scope_id=application_id,
            )
        return stage

    @staticmethod
    def _ordered_stages(session: Session, application_id: int) -> list[ApplicationStage]:
        return list(
            session.execute(
                select(ApplicationStage)
                .where(ApplicationStage.application_id == application_id)
                .order_by(ApplicationStage.sequence.asc())
            ).scalars()
        )

    @staticmethod
    def _point_at(application: Application, stage: ApplicationStage, status: str) -> None:
        application.current_stage_key = stage.stage_key
        application.current_stage_status = status
        application.current_assignee_role = stage.assigned_role
        application.current_assignee_id = stage.assigned_user_id
        application.next_action_due = stage.due_date

    # ── Initialisation ───────────────────────────────────────────────────

    def has_workflow(self, application_id: int, session: Session | None = None) -> bool:
        """True when at least one stage row exists for the application."""
        session = session or self._session_factory()
        count = session.execute(
            select(func.count(ApplicationStage.id))
            .where(ApplicationStage.application_id == application_id)
        ).scalar()
        return bool(count)

    def initialize_workflow(
        self, application_id: int, *, uow: UnitOfWork | None = None,
    ) -> list[ApplicationStage]:
        """Create the six stage rows for a new application and activate stage 1.

        Not idempotent: calling twice creates a second set of stages. Run it
        in the same unit of work that created the application so it happens
        at most once.

        Returns:
            The application's stages ordered by sequence.

        Raises:
            NotFoundError: the application does not exist.
            WorkflowIntegrityError: no stage could be read back after insert.
        """
        with self._unit_of_work(uow) as session:
            application = self._get_application(session, application_id)
            now = self._clock()

            session.add_all([
                ApplicationStage(
                    application_id=application_id,
                    stage_key=template.stage_key,
                    name=template.name,
                    description=template.description,
                    assigned_role=template.assigned_role,
                    assigned_user_id=None,
                    sequence=template.sequence,
                    status="PENDING",
                    due_date=add_business_days(now, template.due_in_business_days),
                    payload=(
                        json.dumps(template.default_payload)
                        if template.default_payload is not None else None
                    ),
                )
                for template in get_stage_templates()
            ])
            session.flush()

            first_stage = session.execute(
                select(ApplicationStage)
                .where(ApplicationStage.application_id == application_id)
                .order_by(ApplicationStage.sequence.asc())
                .limit(1)
            ).scalars().first()
            if first_stage is None:
                logger.error(
                    "Workflow initialisation produced no stages",
                    extra={"application_id": application_id},
                )
                raise WorkflowIntegrityError(
                    f"Failed to initialize workflow stages for application {application_id}"
                )

            timeline_service.append_event(
                session,
                application_id=application_id,
                stage_key=first_stage.stage_key,
                event_type="WORKFLOW_INITIALIZED",
                notes="Application workflow initialized with default stages.",
            )
            self._point_at(application, first_stage, first_stage.status)
            stages = self._ordered_stages(session, application_id)

        logger.info(
            "Workflow initialized",
            extra={
                "application_id": application_id,
                "stage_key": stages[0].stage_key,
                "event_type": "WORKFLOW_INITIALIZED",
            },
        )
        return stages

    # ── Status transitions ───────────────────────────────────────────────

    def update_stage_status(
        self,
        application_id: int,
        stage_id: int,
        data: dict,
        *,
        uow: UnitOfWork | None = None,
    ) -> ApplicationStage:
        """Set a stage's status and keep the application pointers in step.

        Args:
            data: {"status": str, "notes": str?, "metadata": any?,
                   "actor_user_id": str?, "actor_display_name": str?}

        Side effects:
            IN_PROGRESS  started_at = now, only if not already set.
            COMPLETED    completed_at = now (always refreshed), then cascade:
                         next sequence → pointers + STAGE_ACTIVATED;
                         no next stage → terminal pointers + WORKFLOW_COMPLETED.
            otherwise    pointers re-synced to this stage.
            always       one STAGE_STATUS_UPDATED timeline row with the actor.

        Raises:
            ValidationError: unknown status (before any write).
            NotFoundError: stage missing or owned by another application.
        """
        status = data.get("status")
        if status not in STAGE_STATUSES:
            raise ValidationError(
                "Invalid stage status update requested",
                details={"status": f"must be one of: {', '.join(STAGE_STATUSES)}"},
            )

        with self._unit_of_work(uow) as session:
            stage = self._load_stage(session, application_id, stage_id)
            now = self._clock()
            previous_status = stage.status

            stage.status = status
            if status == "IN_PROGRESS" and stage.started_at is None:
                stage.started_at = now
            if status == "COMPLETED":
                stage.completed_at = now
            session.flush()

            timeline_service.append_event(
                session,
                application_id=application_id,
                stage_key=stage.stage_key,
                event_type="STAGE_STATUS_UPDATED",
                performed_by_id=data.get("actor_user_id"),
                performed_by_name=data.get("actor_display_name"),
                notes=data.get("notes"),
                metadata=data.get("metadata"),
            )

            application = self._get_application(session, application_id)
            cascade_event = None

            if status == "COMPLETED":
                next_stage = session.execute(
                    select(ApplicationStage)
                    .where(
                        ApplicationStage.application_id == application_id,
                        ApplicationStage.sequence > stage.sequence,
                    )
                    .order_by(ApplicationStage.sequence.asc())
                    .limit(1)
                ).scalars().first()

                if next_stage is not None:
                    # The next stage row keeps its own status; only the mirror moves.
                    self._point_at(application, next_stage, next_stage.status)
                    cascade_event = timeline_service.append_event(
                        session,
                        application_id=application_id,
                        stage_key=next_stage.stage_key,
                        event_type="STAGE_ACTIVATED",
                        notes=f"Stage {next_stage.name} activated after completion of {stage.name}.",
                    )
                else:
                    application.current_stage_key = stage.stage_key
                    application.current_stage_status = "COMPLETED"
                    application.current_assignee_role = None
                    application.current_assignee_id = None
                    application.next_action_due = None
                    cascade_event = timeline_service.append_event(
                        session,
                        application_id=application_id,
                        stage_key=stage.stage_key,
                        event_type="WORKFLOW_COMPLETED",
                        notes="All workflow stages completed.",
                    )
            else:
                self._point_at(application, stage, status)

            stage_key = stage.stage_key

        logger.info(
            "Stage status updated: %s → %s", previous_status, status,
            extra={
                "application_id": application_id,
                "stage_key": stage_key,
                "event_type": cascade_event.event_type if cascade_event else "STAGE_STATUS_UPDATED",
            },
        )
        return stage

    # ── Assignment ───────────────────────────────────────────────────────

    def assign_stage(
        self,
        application_id: int,
        stage_id: int,
        data: dict,
        *,
        uow: UnitOfWork | None = None,
    ) -> ApplicationStage:
        """Reassign a stage to a role and/or a named individual.

        Args:
            data: {"assigned_role": str?, "assigned_user_id": str | None?,
                   "notes": str?, "metadata": any?,
                   "actor_user_id": str?, "actor_display_name": str?}
                  An omitted assigned_role keeps the current role; an omitted
                  assigned_user_id clears the individual (role-level ownership).

        The application pointers are only touched when this stage is the one
        they currently point at, so future stages can be pre-assigned.

        Raises:
            ValidationError: neither assignment key given, or a blank role.
            NotFoundError: stage missing or owned by another application.
        """
        if "assigned_role" not in data and "assigned_user_id" not in data:
            raise ValidationError(
                "assigned_role or assigned_user_id is required",
                details={"assigned_role": "required", "assigned_user_id": "required"},
            )
        role = data.get("assigned_role")
        if "assigned_role" in data and role is not None and (not isinstance(role, str) or not role.strip()):
            raise ValidationError(
                "assigned_role must be a non-empty string",
                details={"assigned_role": "must be a non-empty string"},
            )
        user_id = data.get("assigned_user_id")

        with self._unit_of_work(uow) as session:
            stage = self._load_stage(session, application_id, stage_id)

            stage.assigned_role = role.strip() if role else stage.assigned_role
            stage.assigned_user_id = str(user_id) if user_id is not None else None
            session.flush()

            timeline_service.append_event(
                session,
                application_id=application_id,
                stage_key=stage.stage_key,
                event_type="STAGE_ASSIGNED",
                performed_by_id=data.get("actor_user_id"),
                performed_by_name=data.get("actor_display_name"),
                notes=data.get("notes"),
                metadata=data.get("metadata"),
            )

            application = self._get_application(session, application_id)
            is_current = application.current_stage_key == stage.stage_key
            if is_current:
                application.current_assignee_role = stage.assigned_role
                application.current_assignee_id = stage.assigned_user_id

            stage_key = stage.stage_key
            assigned_role = stage.assigned_role

        logger.info(
            "Stage assigned to %s%s", assigned_role, " (current stage)" if is_current else "",
            extra={
                "application_id": application_id,
                "stage_key": stage_key,
                "event_type": "STAGE_ASSIGNED",
            },
        )
        return stage

    # ── Communications ───────────────────────────────────────────────────

    def log_communication(
        self, application_id: int, data: dict, *, uow: UnitOfWork | None = None,
    ):
        """Record queued correspondence plus its COMMUNICATION_LOGGED entry.

        Raises:
            ValidationError: missing/invalid recipient, channel, body or status.
            NotFoundError: the application does not exist.
        """
        cleaned = communication_service.validate_communication(data)

        with self._unit_of_work(uow) as session:
            self._get_application(session, application_id)
            communication = communication_service.record_communication(
                session, application_id, cleaned,
            )

        logger.info(
            "Communication logged via %s", cleaned["channel"],
            extra={"application_id": application_id, "event_type": "COMMUNICATION_LOGGED"},
        )
        return communication

    # ── Read model ───────────────────────────────────────────────────────

    def get_workflow_summary(self, application_id: int, session: Session | None = None) -> dict:
        """Stages (by sequence), timeline and communications (newest first).

        The three lists are independent reads; they are not guaranteed to
        come from one snapshot. Never use this view for transition decisions.
        """
        session = session or self._session_factory()
        self._get_application(session, application_id)

        stages = self._ordered_stages(session, application_id)
        timeline = timeline_service.list_timeline(application_id, session)
        communications = communication_service.list_communications(application_id, session)

        return {
            "application_id": application_id,
            "stages": [s.to_dict() for s in stages],
            "timeline": [t.to_dict() for t in timeline],
            "communications": [c.to_dict() for c in communications],
        }
