"""
Stage template catalogue for the admissions review pipeline.

Six fixed stages, each owned by one school role, executed in ``sequence``
order. The catalogue is compile-time data: it is never persisted and never
mutated at runtime. ApplicationWorkflow copies it into ApplicationStage rows
when a workflow is initialised.

Usage:
    from admissions.services.stage_templates import get_stage_templates, get_stage_order

    for template in get_stage_templates():
        ...
    get_stage_order("FINANCIAL_REVIEW")   # → 2
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta

# Saturday, Sunday (datetime.weekday())
_WEEKEND = frozenset({5, 6})


@dataclass(frozen=True)
class StageTemplate:
    """Immutable definition of one pipeline stage."""

    stage_key: str
    name: str
    description: str
    assigned_role: str
    sequence: int
    due_in_business_days: int | None = None
    _default_payload: dict | None = field(default=None, repr=False)

    @property
    def default_payload(self) -> dict | None:
        """Fresh copy of the default checklist payload."""
        return copy.deepcopy(self._default_payload)

    def to_dict(self) -> dict:
        return {
            "stage_key": self.stage_key,
            "name": self.name,
            "description": self.description,
            "assigned_role": self.assigned_role,
            "sequence": self.sequence,
            "due_in_business_days": self.due_in_business_days,
            "default_payload": self.default_payload,
        }


STAGE_TEMPLATES: tuple[StageTemplate, ...] = (
    StageTemplate(
        stage_key="DOCUMENT_VERIFICATION",
        name="Secretary Document Verification",
        description=(
            "Secretary verifies application completeness, identity documents, proof of "
            "address, birth/baptism certificates, medical notes, and supporting files."
        ),
        assigned_role="SECRETARY",
        sequence=1,
        due_in_business_days=3,
        _default_payload={
            "checklist": [
                "Birth certificate",
                "Baptism certificate (if applicable)",
                "ID/passport copies (parents/guardians)",
                "Proof of residence",
                "Latest school report",
                "Transfer letter (if applicable)",
            ],
            "allowAdditionalNotes": True,
        },
    ),
    StageTemplate(
        stage_key="FINANCIAL_REVIEW",
        name="Bursar Financial Review",
        description=(
            "Bursar evaluates fee affordability, outstanding balances, and flags "
            "requirements for financial assistance documentation."
        ),
        assigned_role="BURSAR",
        sequence=2,
        due_in_business_days=5,
        _default_payload={
            "checklist": [
                "Fee structure acknowledgement",
                "Outstanding balance checks",
                "Payment plan / bursary requirements",
            ],
        },
    ),
    StageTemplate(
        stage_key="ASSESSMENT_SCHEDULING",
        name="Assessment Scheduling",
        description=(
            "Principal or admissions lead coordinates with relevant teacher to book "
            "learner assessment date and notify parents."
        ),
        assigned_role="PRINCIPAL",
        sequence=3,
        due_in_business_days=7,
        _default_payload={
            "requiresAssessmentDate": True,
            "emailTemplate": "ASSESSMENT_INVITE",
        },
    ),
    StageTemplate(
        stage_key="ASSESSMENT_OUTCOME",
        name="Assessment Outcome Capture",
        description="Class teacher records assessment results and recommendations for admission.",
        assigned_role="TEACHER",
        sequence=4,
        due_in_business_days=5,
        _default_payload={"requiresAssessmentReport": True},
    ),
    StageTemplate(
        stage_key="FINAL_DECISION",
        name="Principal Final Decision",
        description=(
            "Principal reviews all findings, confirms acceptance or rejection, and "
            "prepares parent communication."
        ),
        assigned_role="PRINCIPAL",
        sequence=5,
        due_in_business_days=3,
        _default_payload={
            "expectsDecision": True,
            "decisionOptions": ["APPROVED", "REJECTED", "WAITLISTED"],
        },
    ),
    StageTemplate(
        stage_key="ENROLMENT_PACK",
        name="Enrolment Pack & Onboarding",
        description=(
            "Secretary issues enrolment documents, confirms signed contracts, and "
            "queues welcome communications."
        ),
        assigned_role="SECRETARY",
        sequence=6,
        due_in_business_days=7,
        _default_payload={
            "checklist": [
                "Admission letter sent",
                "Acceptance of offer received",
                "Deposit acknowledged",
                "Welcome pack delivered",
            ],
        },
    ),
)

_STAGE_ORDER: dict[str, int] = {t.stage_key: t.sequence for t in STAGE_TEMPLATES}


def get_stage_templates() -> list[StageTemplate]:
    """Return the catalogue ordered by ascending sequence."""
    return sorted(STAGE_TEMPLATES, key=lambda t: t.sequence)


def get_stage_order(stage_key: str) -> int | None:
    """Return the sequence number for *stage_key*, or None if unknown."""
    return _STAGE_ORDER.get(stage_key)


def add_business_days(start: datetime, number_of_days: int | None) -> datetime | None:
    """Advance *start* by *number_of_days* weekdays, keeping the time of day.

    Walks one calendar day at a time and counts only Monday–Friday landings.
    A missing, zero or negative offset means "no due date" and returns None.
    """
    if not number_of_days or number_of_days <= 0:
        return None

    result = start
    added = 0
    while added < number_of_days:
        result = result + timedelta(days=1)
        if result.weekday() not in _WEEKEND:
            added += 1
    return result
