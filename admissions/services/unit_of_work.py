"""
Unit-of-work capability for workflow mutations.

Every mutating workflow call runs inside exactly one unit of work. The caller
decides whether that unit is the call's own transaction or part of a larger
one (e.g. application intake creating the application row and its workflow
together):

    OwnTransaction(db.session)     commit on success, rollback on error
    CallerTransaction(session)     flush on success; the caller commits/rolls back

Usage:
    with uow as session:
        session.add(...)
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    """Context manager that yields the Session all writes go through."""

    session: Session

    def __enter__(self) -> Session: ...

    def __exit__(self, exc_type, exc, tb) -> bool: ...


class OwnTransaction:
    """Opens and closes its own transaction around a single workflow call."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def __enter__(self) -> Session:
        return self.session

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.session.commit()
        else:
            logger.debug("Rolling back workflow transaction after %s", exc_type.__name__)
            self.session.rollback()
        return False


class CallerTransaction:
    """Joins a transaction owned by the caller.

    Never commits or rolls back: the caller's own rollback discards these
    writes together with everything else in its transaction.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def __enter__(self) -> Session:
        return self.session

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.session.flush()
        return False
