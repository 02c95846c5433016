"""
Shared pytest fixtures for the traveler service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - template / make_template: FormTemplate factories
    - traveler: traveler created from a three-input template (A, B, C)
    - binder_calls: records Binder.update_work_progress / update_progress calls
"""

import pytest

from travelers import create_app
from travelers.models import db as _db
from travelers.models.binder import Binder
from travelers.services import traveler_service


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
def make_template():
    """Factory: make_template("A", "B") → FormTemplate with inputs A and B."""

    def _make(*names, title="Inspection Form"):
        return traveler_service.create_template({
            "title": title,
            "html": "<form>" + "".join(f'<input name="{n}">' for n in names) + "</form>",
            "mapping": {f"key_{n.lower()}": n for n in names},
            "labels": {n: f"Label {n}" for n in names},
        }, user="designer")

    return _make


@pytest.fixture()
def template(make_template):
    return make_template("A", "B", "C")


@pytest.fixture()
def traveler(template):
    """A fresh status-0 traveler whose active form has inputs A, B, C."""
    return traveler_service.create_traveler(template.id, "alice", title="Cavity 7 assembly")


@pytest.fixture()
def binder_calls(monkeypatch):
    """Record every binder update made by the cascade.

    Returns a list of (method_name, binder_id, traveler_id_or_None) tuples;
    the real methods still run.
    """
    calls = []
    real_work = Binder.update_work_progress
    real_progress = Binder.update_progress

    def _work(self, snapshot):
        calls.append(("update_work_progress", self.id, snapshot["id"]))
        return real_work(self, snapshot)

    def _progress(self):
        calls.append(("update_progress", self.id, None))
        return real_progress(self)

    monkeypatch.setattr(Binder, "update_work_progress", _work)
    monkeypatch.setattr(Binder, "update_progress", _progress)
    return calls
