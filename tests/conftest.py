"""
Shared pytest fixtures for the workplan test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - coordinator / supervisor / support: Pre-created employees (supervisor holds the manager role)
    - program / initiative / task: a small hierarchy built through the services
    - new_task: factory for more Tasks under an Initiative
    - alerts_sent: captures alerts delivered after commit
"""

from datetime import date

import pytest

from workplan import create_app
from workplan.models import db as _db
from workplan.services import hierarchy_service as hs
from workplan.services.snapshots import InitiativeSnapshot, TaskSnapshot

# Fixed calendar for date-driven tests
TODAY = date(2026, 3, 10)


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
def alerts_sent(app):
    """Install a capturing alert sink; yields the list of delivered alerts."""
    delivered = []
    app.extensions["alert_sink"] = delivered.append
    yield delivered
    app.extensions.pop("alert_sink", None)


# ── Employees ────────────────────────────────────────────────────────────


def _employee(name, role):
    slug = name.lower().replace(" ", ".")
    return hs.create_employee({"full_name": name, "email": f"{slug}@acme.com", "role": role})


@pytest.fixture()
def coordinator():
    return _employee("Carla Coordinator", "coordinator")


@pytest.fixture()
def supervisor():
    return _employee("Sam Supervisor", "manager")


@pytest.fixture()
def support():
    return _employee("Pat Support", "support")


# ── Hierarchy ────────────────────────────────────────────────────────────


@pytest.fixture()
def program(coordinator):
    return hs.create_program(
        {"name": "Digital Backbone", "start_date": "2026-01-01", "deadline": "2026-12-31"},
        coordinator["id"],
    )


@pytest.fixture()
def initiative(program, coordinator):
    snapshot = InitiativeSnapshot(
        name="Network refresh",
        program_id=program["id"],
        start_date=date(2026, 1, 15),
        deadline=date(2026, 9, 30),
    )
    return hs.create_initiative(snapshot, coordinator["id"], today=TODAY)


@pytest.fixture()
def new_task(coordinator):
    """Factory: create a Task under an Initiative through the direct path."""
    def _make(initiative, assignee_ids, name="Install switches",
              deadline=date(2026, 6, 30), today=TODAY):
        snapshot = TaskSnapshot(
            name=name,
            initiative_id=initiative["id"],
            deadline=deadline,
            assignee_ids=list(assignee_ids),
        )
        return hs.create_task(snapshot, coordinator["id"], today=today)
    return _make


@pytest.fixture()
def task(initiative, support, new_task):
    return new_task(initiative, [support["id"]])
