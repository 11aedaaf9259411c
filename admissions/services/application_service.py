"""
Application intake service.

Business logic for:
    - Submission:  validate the parent's form, create the Application and
                   initialise its review workflow in ONE transaction
    - Reads:       list (newest submission first) and single fetch
    - Outcome:     overall admission status (PENDING … ENROLLED) + notes
    - Statistics:  totals, grade distribution, monthly submissions (last 12
                   months), applications per current stage
    - Backfill:    initialise workflows for applications stored without one

The review pipeline itself lives in workflow_service.py; this module only
composes with it through CallerTransaction so a failed initialisation also
discards the application row.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select

from admissions.core.exceptions import NotFoundError, ValidationError
from admissions.models import db
from admissions.models.application import APPLICATION_STATUSES, Application
from admissions.models.workflow import ApplicationStage
from admissions.services.unit_of_work import CallerTransaction
from admissions.services.workflow_service import ApplicationWorkflow

logger = logging.getLogger(__name__)

_REQUIRED_TEXT_FIELDS = (
    "surname",
    "christian_name",
    "place_of_birth",
    "grade_applying",
    "year",
    "mother_full_name",
    "mother_address",
    "mother_cell_phone",
    "father_full_name",
    "father_address",
    "father_cell_phone",
)

_OPTIONAL_TEXT_FIELDS = (
    "last_grade_passed",
    "learner_address",
    "mother_home_phone",
    "mother_work_phone",
    "father_home_phone",
    "father_work_phone",
    "current_school",
    "home_language",
    "notes",
)

_EMAIL_FIELDS = ("mother_email", "father_email")


def _clean_text(value) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def validate_submission(data: dict) -> dict:
    """Validate the intake form; return a dict ready for Application(**...).

    Raises:
        ValidationError: with one entry per failing field in ``details``.
    """
    errors: dict[str, str] = {}
    cleaned: dict = {}

    for name in _REQUIRED_TEXT_FIELDS:
        value = _clean_text(data.get(name))
        if value is None:
            errors[name] = "required"
        cleaned[name] = value

    raw_dob = data.get("date_of_birth")
    try:
        cleaned["date_of_birth"] = date.fromisoformat(str(raw_dob)[:10]) if raw_dob else None
    except ValueError:
        cleaned["date_of_birth"] = None
    if cleaned["date_of_birth"] is None:
        errors["date_of_birth"] = "required (YYYY-MM-DD)"

    for name in _OPTIONAL_TEXT_FIELDS:
        cleaned[name] = _clean_text(data.get(name))

    for name in _EMAIL_FIELDS:
        value = _clean_text(data.get(name))
        if value is None:
            cleaned[name] = None
            continue
        try:
            cleaned[name] = validate_email(value, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors[name] = f"invalid email: {e}"

    if data.get("agree_to_terms") is not True:
        errors["agree_to_terms"] = "You must agree to terms and conditions"
    if data.get("agree_to_privacy") is not True:
        errors["agree_to_privacy"] = "You must agree to privacy policy"

    if errors:
        raise ValidationError("Validation error", details=errors)
    return cleaned


def submit_application(data: dict, workflow: ApplicationWorkflow) -> Application:
    """Create an application and its workflow atomically.

    Raises:
        ValidationError: the form is incomplete or malformed (nothing written).
    """
    cleaned = validate_submission(data)

    session = db.session
    try:
        application = Application(status="PENDING", **cleaned)
        session.add(application)
        session.flush()
        workflow.initialize_workflow(application.id, uow=CallerTransaction(session))
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        "Application submitted for grade %s", application.grade_applying,
        extra={"application_id": application.id},
    )
    return application


def list_applications() -> list[Application]:
    """Return all applications, most recent submission first."""
    return list(
        db.session.execute(
            select(Application).order_by(Application.submitted_at.desc(), Application.id.desc())
        ).scalars()
    )


def get_application(application_id: int) -> Application:
    """Fetch one application or raise NotFoundError."""
    application = db.session.get(Application, application_id)
    if application is None:
        raise NotFoundError(resource="Application", resource_id=application_id)
    return application


def update_application_status(application_id: int, status: str, notes: str | None = None) -> Application:
    """Record the overall admission outcome.

    Independent of the review pipeline: it never touches stages, the
    workflow pointers or the timeline.
    """
    if status not in APPLICATION_STATUSES:
        raise ValidationError(
            "Invalid status",
            details={"status": f"must be one of: {', '.join(APPLICATION_STATUSES)}"},
        )
    application = get_application(application_id)
    application.status = status
    application.notes = _clean_text(notes)
    db.session.commit()

    logger.info(
        "Application status set to %s", status,
        extra={"application_id": application_id},
    )
    return application


def get_statistics() -> dict:
    """Aggregate counters for the admissions dashboard."""
    by_status = dict(
        db.session.execute(
            select(Application.status, func.count(Application.id)).group_by(Application.status)
        ).all()
    )
    grade_rows = db.session.execute(
        select(Application.grade_applying, func.count(Application.id))
        .group_by(Application.grade_applying)
        .order_by(Application.grade_applying)
    ).all()
    stage_rows = db.session.execute(
        select(Application.current_stage_key, Application.current_stage_status, func.count(Application.id))
        .group_by(Application.current_stage_key, Application.current_stage_status)
    ).all()

    cutoff = datetime.now(timezone.utc) - timedelta(days=365)
    submitted = db.session.execute(
        select(Application.submitted_at).where(Application.submitted_at >= cutoff)
    ).scalars()
    per_month = Counter(ts.strftime("%Y-%m") for ts in submitted if ts is not None)

    by_current_stage: dict[str, dict[str, int]] = {}
    for stage_key, stage_status, count in stage_rows:
        bucket = by_current_stage.setdefault(stage_key or "NOT_STARTED", {})
        bucket[stage_status or "NONE"] = count

    return {
        "total_applications": sum(by_status.values()),
        "pending_applications": by_status.get("PENDING", 0),
        "approved_applications": by_status.get("APPROVED", 0),
        "enrolled_applications": by_status.get("ENROLLED", 0),
        "by_status": by_status,
        "grade_distribution": [
            {"grade": grade, "count": count} for grade, count in grade_rows
        ],
        "monthly_applications": [
            {"month": month, "count": per_month[month]}
            for month in sorted(per_month, reverse=True)
        ],
        "by_current_stage": by_current_stage,
    }


def find_applications_without_workflow() -> list[int]:
    """Ids of applications that have no stage rows at all."""
    has_stage = (
        select(ApplicationStage.id)
        .where(ApplicationStage.application_id == Application.id)
        .exists()
    )
    return list(
        db.session.execute(
            select(Application.id).where(~has_stage).order_by(Application.id)
        ).scalars()
    )


def backfill_missing_workflows(workflow: ApplicationWorkflow, *, dry_run: bool = False) -> list[int]:
    """Initialise workflows for applications stored without one.

    Each application gets its own transaction, so one failure does not
    undo the others; the failure is logged and the run continues.

    Returns:
        Ids that were (or, with dry_run, would be) initialised.
    """
    missing = find_applications_without_workflow()
    if dry_run:
        return missing

    initialised = []
    for application_id in missing:
        try:
            workflow.initialize_workflow(application_id)
        except Exception:
            logger.exception(
                "Workflow backfill failed", extra={"application_id": application_id},
            )
            continue
        initialised.append(application_id)

    logger.info("Workflow backfill initialised %d of %d applications", len(initialised), len(missing))
    return initialised
