"""
Workflow timeline (audit trail) writer and reader.

The timeline is append-only: this module only creates rows and reads them
back. The model rejects updates and deletes at flush time.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from admissions.models import db
from admissions.models.workflow import TIMELINE_EVENT_TYPES, ApplicationTimeline

logger = logging.getLogger(__name__)


def serialize_metadata(value) -> str | None:
    """Serialise an opaque metadata value to JSON text.

    None stays None. A value json cannot encode is logged and dropped
    rather than failing the surrounding workflow transaction.
    """
    if value is None:
        return None
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError) as exc:
        logger.warning("Failed to serialize workflow metadata: %s", exc)
        return None


def append_event(
    session: Session,
    *,
    application_id: int,
    event_type: str,
    stage_key: str | None = None,
    performed_by_id: str | None = None,
    performed_by_name: str | None = None,
    notes: str | None = None,
    metadata=None,
) -> ApplicationTimeline:
    """Append one timeline row. Flushes so callers keep transaction control."""
    if event_type not in TIMELINE_EVENT_TYPES:
        raise ValueError(f"Unknown timeline event type: {event_type}")

    entry = ApplicationTimeline(
        application_id=application_id,
        stage_key=stage_key,
        event_type=event_type,
        performed_by_id=performed_by_id,
        performed_by_name=performed_by_name,
        notes=notes,
        metadata_json=serialize_metadata(metadata),
    )
    session.add(entry)
    session.flush()
    return entry


def list_timeline(application_id: int, session: Session | None = None) -> list[ApplicationTimeline]:
    """Return every timeline row for an application, newest first."""
    session = session or db.session
    return list(
        session.execute(
            select(ApplicationTimeline)
            .where(ApplicationTimeline.application_id == application_id)
            .order_by(ApplicationTimeline.created_at.desc(), ApplicationTimeline.id.desc())
        ).scalars()
    )
