"""
Shared pytest fixtures for the DealDesk checklist engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - seeded_catalog: Default buy-side / sell-side catalog
    - store: SqlAlchemyTaskStore bound to the test session
"""

import pytest

from dealdesk import create_app
from dealdesk.models import db as _db


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def seeded_catalog():
    """Seed the default catalog and return the number of rows created."""
    from dealdesk.services.template_catalog import seed_default_catalog
    return seed_default_catalog()


@pytest.fixture()
def store():
    """Task store on the Flask-SQLAlchemy session."""
    from dealdesk.services.task_store import SqlAlchemyTaskStore
    return SqlAlchemyTaskStore()
