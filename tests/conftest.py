"""
Shared pytest fixtures for the montage pipeline test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_person / auth_headers: create people and act as them over HTTP
    - admin, installer, architect: pre-created Person rows
"""

import pytest

from montage_app import create_app
from montage_app.models import db as _db
from montage_app.models.person import Person
from montage_app.services.jwt_service import generate_access_token


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


# ── People & identity ────────────────────────────────────────────────────

_counter = {"n": 0}


@pytest.fixture()
def make_person():
    """Factory: ``make_person(["installer"], name="Jan")`` → committed Person."""

    def _make(roles, name=None, email=None):
        _counter["n"] += 1
        person = Person(
            name=name or f"Person {_counter['n']}",
            email=email or f"person{_counter['n']}@example.test",
            roles=list(roles),
        )
        _db.session.add(person)
        _db.session.commit()
        return person

    return _make


@pytest.fixture()
def auth_headers():
    """Factory: Bearer header for a Person (or explicit id + roles)."""

    def _headers(person=None, *, user_id=None, roles=None):
        uid = person.id if person is not None else user_id
        role_list = list(person.roles) if person is not None else list(roles or [])
        return {"Authorization": f"Bearer {generate_access_token(uid, role_list)}"}

    return _headers


@pytest.fixture()
def admin(make_person):
    return make_person(["admin"], name="Office Admin")


@pytest.fixture()
def installer(make_person):
    return make_person(["installer"], name="Crew Lead")


@pytest.fixture()
def architect(make_person):
    return make_person(["architect"], name="Partner Architect")


@pytest.fixture()
def auth_required(app):
    """Turn on API_AUTH_ENABLED for one test."""
    previous = app.config["API_AUTH_ENABLED"]
    app.config["API_AUTH_ENABLED"] = "true"
    yield
    app.config["API_AUTH_ENABLED"] = previous
