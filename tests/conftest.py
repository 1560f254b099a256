"""
Shared pytest fixtures for the QssunReports test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - branch / admin / employee / team_lead / team: pre-created rows
"""

import shutil

import pytest

from qssun_reports import create_app
from qssun_reports.models import db as _db
from qssun_reports.models.auth import Branch, User
from qssun_reports.models.team import TechnicalTeam
from qssun_reports.utils.crypto import hash_password

PASSWORD = "secret123"
# bcrypt is slow on purpose; hash once for every factory-made user
_PASSWORD_HASH = hash_password(PASSWORD)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    yield application
    shutil.rmtree(application.config["UPLOAD_FOLDER"], ignore_errors=True)


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


# ── Factories ────────────────────────────────────────────────────────────


def make_user(employee_id, *, name=None, role="employee", branch=None, **kwargs):
    """Create and commit a User with the shared test password."""
    user = User(
        username=employee_id,
        password_hash=_PASSWORD_HASH,
        full_name=name or f"User {employee_id}",
        role=role,
        branch=branch,
        is_first_login=kwargs.pop("is_first_login", False),
        **kwargs,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def make_team(leader, name="Team A", members=None):
    team = TechnicalTeam(name=name, leader=leader, members=members or ["Member 1"])
    _db.session.add(team)
    _db.session.commit()
    return team


@pytest.fixture()
def branch():
    b = Branch(name="Riyadh", location="Riyadh")
    _db.session.add(b)
    _db.session.commit()
    return b


@pytest.fixture()
def admin(branch):
    return make_user("1000", name="Admin User", role="admin", branch=branch)


@pytest.fixture()
def employee(branch):
    return make_user("1001", name="Sales Employee", role="employee", branch=branch)


@pytest.fixture()
def team_lead(branch):
    return make_user("2001", name="Team Leader", role="team_lead", branch=branch)


@pytest.fixture()
def team(team_lead):
    return make_team(team_lead)
