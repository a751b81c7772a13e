"""
Platform-wide exception hierarchy.

Services raise these types; blueprints and scripts map them to HTTP status
codes or exit codes in one place.

Usage:
    from sitetrack.core.exceptions import NotFoundError, StoreError

    raise NotFoundError(resource="Chantier", resource_id="ch-42")
    raise MalformedRecordError("Phase name is missing", details={"phase_index": 3})
"""


class NotFoundError(Exception):
    """Raised when a requested document does not exist in its collection.

    Args:
        resource: Human-readable entity name (e.g. "Chantier").
        resource_id: The document id that was looked up.
        collection: Optional store collection name, for debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        collection: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.collection = collection
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if collection is not None:
            msg += f" (collection={collection})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when data is well-formed JSON but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class MalformedRecordError(ValidationError):
    """A stored record cannot be migrated because its legacy data is broken.

    Raised inside the per-record pipeline; the orchestrator turns it into a
    failed outcome for that record only.
    """


class StoreError(Exception):
    """Raised when the document store rejects a read or write."""


class BatchCommitError(StoreError):
    """Raised when an atomic write batch fails to commit.

    Args:
        message: Human-readable explanation.
        staged: Number of updates in the rejected batch.
        committed_batches: Batches already committed earlier in the same run.
    """

    def __init__(self, message: str, staged: int = 0, committed_batches: int = 0) -> None:
        self.staged = staged
        self.committed_batches = committed_batches
        super().__init__(message)
