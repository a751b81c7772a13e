"""
Firestore-backed document store.

Production chantier data lives in Cloud Firestore. The client is injected so
the adapter can be exercised with a stub in tests; ``from_app`` builds a real
client through the Firebase Admin SDK using application-default credentials.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import GoogleAPICallError, NotFound

from sitetrack.core.exceptions import BatchCommitError, NotFoundError, StoreError
from sitetrack.services.document_store import DocumentStore, WriteBatch

logger = logging.getLogger(__name__)


class FirestoreWriteBatch(WriteBatch):
    def __init__(self, client):
        super().__init__()
        self._client = client

    def _apply(self) -> None:
        batch = self._client.batch()
        for collection, doc_id, fields in self._ops:
            batch.update(self._client.collection(collection).document(doc_id), fields)
        try:
            batch.commit()
        except GoogleAPICallError as exc:
            raise BatchCommitError(
                f"Firestore rejected batch of {len(self._ops)} update(s): {exc}",
                staged=len(self._ops),
            ) from exc


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, client):
        self._client = client

    @classmethod
    def from_app(cls, project_id: str | None = None) -> "FirestoreDocumentStore":
        if not firebase_admin._apps:
            options = {"projectId": project_id} if project_id else None
            firebase_admin.initialize_app(credentials.ApplicationDefault(), options)
        return cls(firestore.client())

    def list_all(self, collection: str) -> list[tuple[str, dict]]:
        try:
            return [
                (snap.id, snap.to_dict() or {})
                for snap in self._client.collection(collection).stream()
            ]
        except GoogleAPICallError as exc:
            raise StoreError(f"Listing {collection} failed: {exc}") from exc

    def get(self, collection: str, doc_id: str) -> dict | None:
        try:
            snap = self._client.collection(collection).document(doc_id).get()
        except GoogleAPICallError as exc:
            raise StoreError(f"Reading {collection}/{doc_id} failed: {exc}") from exc
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def update_fields(self, collection: str, doc_id: str, fields: dict) -> None:
        try:
            self._client.collection(collection).document(doc_id).update(fields)
        except NotFound as exc:
            raise NotFoundError(resource="Document", resource_id=doc_id, collection=collection) from exc
        except GoogleAPICallError as exc:
            raise StoreError(f"Update of {collection}/{doc_id} failed: {exc}") from exc

    def batch(self) -> WriteBatch:
        return FirestoreWriteBatch(self._client)
