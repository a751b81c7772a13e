"""
Shared pytest fixtures for the Sitetrack test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - store: SQL document store bound to the test database
    - fake_store: In-memory store with commit accounting and fault injection
    - legacy_chantier: Factory for legacy chantier documents
"""

import itertools

import pytest

from sitetrack import create_app
from sitetrack.core.exceptions import NotFoundError
from sitetrack.models import db as _db
from sitetrack.services.document_store import DocumentStore, SqlDocumentStore, WriteBatch


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
def store():
    return SqlDocumentStore()


# ── Legacy data helpers ──────────────────────────────────────────────────


@pytest.fixture()
def legacy_chantier():
    """Build a legacy chantier document.

    Usage:
        legacy_chantier(("Terrassement fondation", 60), ("Toiture", 10),
                        plannedEndDate="2030-01-01T00:00:00+00:00")
    """
    counter = itertools.count(1)

    def _build(*phases, **extra):
        doc = {
            "name": "Chantier Villa Amina",
            "clientId": "client-1",
            "address": "Dakar, Almadies",
            "status": "En cours",
            "globalProgress": 0,
            "phases": [
                {
                    "id": f"legacy-{next(counter)}",
                    "name": name,
                    "progress": progress,
                    "status": "in-progress" if 0 < progress < 100 else ("completed" if progress else "pending"),
                    "description": "legacy",
                }
                for name, progress in phases
            ],
        }
        doc.update(extra)
        return doc

    return _build


# ── In-memory store ──────────────────────────────────────────────────────


class FakeBatch(WriteBatch):
    def __init__(self, store):
        super().__init__()
        self._store = store

    def _apply(self):
        self._store.commit_calls += 1
        if self._store.fail_on_commit == self._store.commit_calls:
            raise RuntimeError("store unavailable")
        for collection, doc_id, fields in self._ops:
            self._store.docs[collection][doc_id].update(fields)
        self._store.committed_sizes.append(len(self._ops))


class FakeStore(DocumentStore):
    """Dict-backed store; ``fail_on_commit=N`` makes the N-th commit raise."""

    def __init__(self):
        self.docs = {}
        self.commit_calls = 0
        self.committed_sizes = []
        self.fail_on_commit = None
        self.list_calls = 0
        self.get_calls = 0
        self.updates = []

    def add(self, collection, doc_id, data):
        self.docs.setdefault(collection, {})[doc_id] = data

    def list_all(self, collection):
        self.list_calls += 1
        return list(self.docs.get(collection, {}).items())

    def get(self, collection, doc_id):
        self.get_calls += 1
        return self.docs.get(collection, {}).get(doc_id)

    def update_fields(self, collection, doc_id, fields):
        if doc_id not in self.docs.get(collection, {}):
            raise NotFoundError(resource="Document", resource_id=doc_id, collection=collection)
        self.updates.append((collection, doc_id))
        self.docs[collection][doc_id].update(fields)

    def batch(self):
        return FakeBatch(self)


@pytest.fixture()
def fake_store():
    return FakeStore()
