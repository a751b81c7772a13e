"""
Document store abstraction.

The chantier data lives in a document store: named collections of JSON
documents addressed by id. Services only use the four operations below, so
the same code runs against the SQL ``documents`` table (default, used in
tests and local dev) and against Firestore (production data).

Operations:
    list_all(collection)               → [(doc_id, data), ...]
    get(collection, doc_id)            → data | None
    update_fields(collection, id, f)   → merge top-level keys; NotFoundError if missing
    batch()                            → WriteBatch, all-or-nothing commit()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from sitetrack.core.exceptions import BatchCommitError, NotFoundError, StoreError
from sitetrack.models import db
from sitetrack.models.document import Document

logger = logging.getLogger(__name__)


class WriteBatch(ABC):
    """Accumulates field updates and applies them atomically on ``commit()``.

    A batch can be committed once; callers open a new batch afterwards.
    """

    def __init__(self):
        self._ops: list[tuple[str, str, dict]] = []
        self._committed = False

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        if self._committed:
            raise StoreError("Cannot stage writes on an already committed batch")
        self._ops.append((collection, doc_id, dict(fields)))

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        self._apply()
        self._committed = True

    @abstractmethod
    def _apply(self) -> None:
        """Write every staged op or none; raise BatchCommitError on failure."""


class DocumentStore(ABC):
    @abstractmethod
    def list_all(self, collection: str) -> list[tuple[str, dict]]:
        ...

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict | None:
        ...

    @abstractmethod
    def update_fields(self, collection: str, doc_id: str, fields: dict) -> None:
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        ...


# ── SQL implementation ───────────────────────────────────────────────────────


def json_safe(value):
    """Convert datetimes (and nested containers) into JSON-storable values."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def _find(collection: str, doc_id: str) -> Document | None:
    return db.session.execute(
        select(Document).where(
            Document.collection == collection,
            Document.doc_id == doc_id,
        )
    ).scalar_one_or_none()


class SqlWriteBatch(WriteBatch):
    def _apply(self) -> None:
        try:
            for collection, doc_id, fields in self._ops:
                doc = _find(collection, doc_id)
                if doc is None:
                    raise NotFoundError(resource="Document", resource_id=doc_id, collection=collection)
                doc.merge(json_safe(fields))
            db.session.commit()
        except (NotFoundError, SQLAlchemyError) as exc:
            db.session.rollback()
            raise BatchCommitError(
                f"Batch of {len(self._ops)} update(s) rejected: {exc}",
                staged=len(self._ops),
            ) from exc


class SqlDocumentStore(DocumentStore):
    """Document store on the ``documents`` table (requires an app context).

    SQLAlchemy faults surface as ``StoreError`` like every other backend.
    """

    def list_all(self, collection: str) -> list[tuple[str, dict]]:
        try:
            rows = db.session.execute(
                select(Document)
                .where(Document.collection == collection)
                .order_by(Document.doc_id)
            ).scalars().all()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"Listing {collection} failed: {exc}") from exc
        return [(row.doc_id, dict(row.data or {})) for row in rows]

    def _read(self, collection: str, doc_id: str) -> Document | None:
        try:
            return _find(collection, doc_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"Reading {collection}/{doc_id} failed: {exc}") from exc

    def get(self, collection: str, doc_id: str) -> dict | None:
        doc = self._read(collection, doc_id)
        return dict(doc.data or {}) if doc else None

    def update_fields(self, collection: str, doc_id: str, fields: dict) -> None:
        doc = self._read(collection, doc_id)
        if doc is None:
            raise NotFoundError(resource="Document", resource_id=doc_id, collection=collection)
        try:
            doc.merge(json_safe(fields))
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"Update of {collection}/{doc_id} failed: {exc}") from exc

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or fully replace a document."""
        doc = self._read(collection, doc_id)
        try:
            if doc is None:
                doc = Document(collection=collection, doc_id=doc_id)
                db.session.add(doc)
            doc.data = json_safe(data)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"Writing {collection}/{doc_id} failed: {exc}") from exc

    def batch(self) -> WriteBatch:
        return SqlWriteBatch()


# ── Factory ──────────────────────────────────────────────────────────────────


def get_document_store(app=None) -> DocumentStore:
    """Return the store configured by ``DOCUMENT_STORE`` (cached per app)."""
    app = app or current_app
    store = app.extensions.get("document_store")
    if store is not None:
        return store

    backend = app.config.get("DOCUMENT_STORE", "sql")
    if backend == "firestore":
        from sitetrack.services.firestore_store import FirestoreDocumentStore

        store = FirestoreDocumentStore.from_app(app.config.get("FIRESTORE_PROJECT_ID"))
    elif backend == "sql":
        store = SqlDocumentStore()
    else:
        raise RuntimeError(f"Unknown DOCUMENT_STORE backend {backend!r}")

    app.extensions["document_store"] = store
    logger.info("Document store initialised: backend=%s", backend)
    return store
