"""
Shared pytest fixtures for the Research Administration Portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - pi_scientist: Pre-created Scientist acting as principal investigator
    - pi / office / reviewer: Actor values for the common IRB roles
"""

import pytest

from research_portal import create_app
from research_portal.auth import Actor
from research_portal.models import db as _db
from research_portal.models.research import Scientist
from research_portal.services.permission_service import invalidate_cache


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


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
        # Tables are recreated per test; drop any cached permission snapshot
        invalidate_cache()
        yield
        invalidate_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def pi_scientist():
    scientist = Scientist(name="Ada Lovelace", email="ada.lovelace@example.org", job_title="Investigator")
    _db.session.add(scientist)
    _db.session.commit()
    return scientist


@pytest.fixture()
def pi(pi_scientist):
    return Actor(role="Investigator", id=pi_scientist.id, name=pi_scientist.name)


@pytest.fixture()
def office():
    return Actor(role="IRB Office", name="Dana Office")


@pytest.fixture()
def reviewer():
    return Actor(role="IRB Reviewer", name="Rex Reviewer")
