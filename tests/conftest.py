"""
Shared pytest fixtures for the Admissions Workflow Service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - workflow: the ApplicationWorkflow registered on the app
    - submission_payload: factory for a complete intake form payload
    - make_application: factory for Application rows without a workflow
    - submitted: one application submitted through the service (six stages)
"""

from datetime import date

import pytest

from admissions import create_app
from admissions.models import db as _db
from admissions.models.application import Application
from admissions.services import application_service
from admissions.services.workflow_service import EXTENSION_KEY


def _valid_submission(**overrides) -> dict:
    """Complete intake form payload; keyword overrides replace fields."""
    payload = {
        "surname": "Dlamini",
        "christian_name": "Thandi",
        "date_of_birth": "2017-03-14",
        "place_of_birth": "Durban",
        "grade_applying": "Grade 2",
        "year": "2027",
        "home_language": "isiZulu",
        "current_school": "Umhlanga Primary",
        "mother_full_name": "Nomsa Dlamini",
        "mother_address": "14 Marine Drive, Umhlanga",
        "mother_cell_phone": "0821234567",
        "mother_email": "nomsa.dlamini@gmail.com",
        "father_full_name": "Sipho Dlamini",
        "father_address": "14 Marine Drive, Umhlanga",
        "father_cell_phone": "0837654321",
        "father_email": "sipho.dlamini@gmail.com",
        "agree_to_terms": True,
        "agree_to_privacy": True,
    }
    payload.update(overrides)
    return payload


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def workflow(app):
    """The workflow engine create_app() registered."""
    return app.extensions[EXTENSION_KEY]


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_application():
    """Factory: insert an Application with no workflow stages and commit it."""

    def _make(**overrides) -> Application:
        fields = {
            "surname": "Naidoo",
            "christian_name": "Priya",
            "date_of_birth": date(2016, 8, 2),
            "place_of_birth": "Pietermaritzburg",
            "grade_applying": "Grade 3",
            "year": "2027",
            "mother_full_name": "Anjali Naidoo",
            "father_full_name": "Rajesh Naidoo",
            "status": "PENDING",
        }
        fields.update(overrides)
        application = Application(**fields)
        _db.session.add(application)
        _db.session.commit()
        return application

    return _make


@pytest.fixture()
def submission_payload():
    """Factory: complete intake payload, keyword overrides replace fields."""
    return _valid_submission


@pytest.fixture()
def submitted(workflow):
    """An application submitted through intake, so its workflow exists."""
    return application_service.submit_application(_valid_submission(), workflow)
