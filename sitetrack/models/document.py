"""Schemaless document model backing the SQL document store.

Each row holds one JSON document of a named collection (``chantiers``,
``clients``, ...). Field-level updates merge into ``data`` at the top level.
"""

from datetime import datetime, timezone

from sitetrack.models import db


class Document(db.Model):
    """One JSON document addressed by ``(collection, doc_id)``."""

    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(100), nullable=False, index=True)
    doc_id = db.Column(db.String(200), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def merge(self, fields: dict) -> None:
        """Overwrite the given top-level keys, leaving every other key intact."""
        merged = dict(self.data or {})
        merged.update(fields)
        # Reassign so SQLAlchemy detects the change on a plain JSON column
        self.data = merged

    def to_dict(self):
        return {
            "id": self.doc_id,
            "collection": self.collection,
            "data": self.data or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Document {self.collection}/{self.doc_id}>"
