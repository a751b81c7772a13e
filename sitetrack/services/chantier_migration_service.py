"""
Chantier phase migration service layer.

Rewrites every chantier's legacy ``phases`` list into the canonical phase
model and recomputes ``globalProgress`` / ``status``.

Pipeline per chantier:
    PhaseMapper (each legacy phase) → GapFiller → sort by order → recompute

Idempotency:
    Migrated chantiers carry ``migrated: true``. They are skipped without
    reading their phases, so the bulk run is safe to repeat after a partial
    failure.

Failure model:
    - unmapped legacy phase   → dropped, warning, counted in unmapped_phases
    - broken chantier data    → that chantier fails, stays unmigrated, run continues
    - batch commit rejected   → BatchCommitError propagates; earlier batches stand
    - collection fetch fails  → propagates before anything is written

Only ``phases``, ``globalProgress``, ``status``, ``updatedAt``, ``migrated``
and ``migrationTimestamp`` are ever written.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable

from flask import current_app

from sitetrack.config import MAX_STORE_BATCH_SIZE
from sitetrack.core.exceptions import (
    BatchCommitError,
    MalformedRecordError,
    NotFoundError,
    StoreError,
)
from sitetrack.services.document_store import DocumentStore, WriteBatch, get_document_store
from sitetrack.services.gap_filler import SYSTEM_MIGRATION_USER, GapFiller
from sitetrack.services.phase_catalog import PhaseCatalog, default_catalog
from sitetrack.services.phase_mapper import DEFAULT_OVERRIDE_RULES, OverrideRule, PhaseMapper, new_id
from sitetrack.services.progress import DEFAULT_POLICY, StatusPolicy, recompute

logger = logging.getLogger(__name__)

MIGRATED_FLAG = "migrated"
MIGRATION_TIMESTAMP = "migrationTimestamp"
RECORD_NOT_FOUND = "not_found"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RecordOutcome:
    """Result of the per-chantier pipeline; never raises past the service."""

    record_id: str
    ok: bool
    update: dict | None = None
    reason: str | None = None
    unmapped: list[str] = field(default_factory=list)


@dataclass
class MigrationResult:
    success: int = 0
    failed: int = 0
    skipped: int = 0
    unmapped_phases: int = 0
    batches_committed: int = 0
    dry_run: bool = False
    failures: list[dict] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return self.success

    @property
    def failed_count(self) -> int:
        return self.failed

    def to_dict(self) -> dict:
        return asdict(self)


class ChantierMigrationService:
    """Migrate chantiers from legacy phases to the canonical phase catalog."""

    def __init__(
        self,
        store: DocumentStore,
        catalog: PhaseCatalog | None = None,
        *,
        collection: str = "chantiers",
        batch_size: int = MAX_STORE_BATCH_SIZE,
        policy: StatusPolicy = DEFAULT_POLICY,
        rules: Iterable[OverrideRule] = DEFAULT_OVERRIDE_RULES,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not 0 < batch_size <= MAX_STORE_BATCH_SIZE:
            raise ValueError(f"batch_size must be within 1..{MAX_STORE_BATCH_SIZE}, got {batch_size}")
        self.store = store
        self.catalog = catalog or default_catalog()
        self.collection = collection
        self.batch_size = batch_size
        self.policy = policy
        self._clock = clock
        self.mapper = PhaseMapper(self.catalog, rules, id_factory)
        self.gap_filler = GapFiller(self.catalog, id_factory, clock)

    @classmethod
    def from_app(cls, app=None) -> "ChantierMigrationService":
        """Build the service from Flask config (store backend, batch size, policy)."""
        app = app or current_app
        return cls(
            get_document_store(app),
            collection=app.config.get("CHANTIER_COLLECTION", "chantiers"),
            batch_size=app.config.get("MIGRATION_BATCH_SIZE", MAX_STORE_BATCH_SIZE),
            policy=StatusPolicy.from_config(app.config),
        )

    # ── Per-record pipeline ──────────────────────────────────────────────

    def build_phases(self, record: dict) -> tuple[list[dict], list[str]]:
        """Return ``(phases sorted by order, unmapped legacy names)``."""
        raw_phases = record.get("phases") or []
        if not isinstance(raw_phases, list):
            raise MalformedRecordError("Chantier phases is not a list")

        migrated, unmapped = self.mapper.map_all(raw_phases)
        phases = migrated + self.gap_filler.fill(migrated)
        phases.sort(key=lambda p: p["order"])

        now = self._clock()
        for phase in phases:
            if not phase.get("lastUpdated"):
                phase["lastUpdated"] = now
            if not phase.get("updatedBy"):
                phase["updatedBy"] = SYSTEM_MIGRATION_USER
        return phases, unmapped

    def migrate_record(self, record_id: str, record: dict) -> RecordOutcome:
        """Run the pipeline for one chantier snapshot and stage nothing.

        Every fault is captured in the returned outcome.
        """
        try:
            phases, unmapped = self.build_phases(record)
            now = self._clock()
            aggregates = recompute(phases, record.get("plannedEndDate"), now, self.policy)
        except Exception as exc:
            logger.exception("Migration pipeline failed for chantier %s", record_id,
                             extra={"chantier_id": record_id, "event_type": "migration.record_failed"})
            return RecordOutcome(record_id=record_id, ok=False, reason=str(exc) or type(exc).__name__)

        update = {
            "phases": phases,
            "globalProgress": aggregates.global_progress,
            "status": aggregates.status,
            "updatedAt": now,
            MIGRATED_FLAG: True,
            MIGRATION_TIMESTAMP: now,
        }
        return RecordOutcome(record_id=record_id, ok=True, update=update, unmapped=unmapped)

    # ── Single chantier ──────────────────────────────────────────────────

    def migrate_chantier_outcome(self, chantier_id: str) -> RecordOutcome:
        """Migrate one chantier with a single read and a single field update.

        A missing chantier yields ``reason == RECORD_NOT_FOUND``; an already
        migrated one is ``ok`` without a write.

        Raises:
            StoreError: the chantier could not be read.
        """
        logger.info("Migrating chantier %s", chantier_id, extra={"chantier_id": chantier_id})
        record = self.store.get(self.collection, chantier_id)

        if record is None:
            logger.error("Chantier %s not found", chantier_id, extra={"chantier_id": chantier_id})
            return RecordOutcome(record_id=chantier_id, ok=False, reason=RECORD_NOT_FOUND)
        if record.get(MIGRATED_FLAG):
            logger.info("Chantier %s already migrated, nothing to do", chantier_id)
            return RecordOutcome(record_id=chantier_id, ok=True)

        outcome = self.migrate_record(chantier_id, record)
        if not outcome.ok:
            return outcome

        try:
            self.store.update_fields(self.collection, chantier_id, outcome.update)
        except (NotFoundError, StoreError) as exc:
            logger.exception("Could not write migrated chantier %s", chantier_id)
            return RecordOutcome(record_id=chantier_id, ok=False, reason=str(exc))

        logger.info("Chantier %s migrated (%d phases)", chantier_id, len(outcome.update["phases"]),
                    extra={"chantier_id": chantier_id, "event_type": "migration.record_migrated"})
        return outcome

    def migrate_chantier(self, chantier_id: str) -> bool:
        """Migrate one chantier.

        Returns True when migrated now or already migrated earlier, and False
        on any failure, including a missing or unreadable chantier.
        """
        try:
            return self.migrate_chantier_outcome(chantier_id).ok
        except StoreError:
            logger.exception("Could not read chantier %s", chantier_id)
            return False

    # ── Whole collection ─────────────────────────────────────────────────

    def _commit(self, batch: WriteBatch, result: MigrationResult) -> None:
        size = len(batch)
        try:
            batch.commit()
        except BatchCommitError as exc:
            exc.committed_batches = result.batches_committed
            logger.error("Batch of %d chantier(s) rejected after %d committed batch(es)",
                         size, result.batches_committed,
                         extra={"batch_size": size, "event_type": "migration.batch_failed"})
            raise
        except Exception as exc:
            logger.error("Batch of %d chantier(s) rejected after %d committed batch(es)",
                         size, result.batches_committed,
                         extra={"batch_size": size, "event_type": "migration.batch_failed"})
            raise BatchCommitError(
                f"Batch commit failed: {exc}",
                staged=size,
                committed_batches=result.batches_committed,
            ) from exc

        result.batches_committed += 1
        logger.info("Committed batch of %d chantier(s)", size,
                    extra={"batch_size": size, "committed_batches": result.batches_committed,
                           "event_type": "migration.batch_committed"})

    def migrate_all_chantiers(self, dry_run: bool = False) -> MigrationResult:
        """Migrate every unmigrated chantier in batches of ``batch_size``.

        Args:
            dry_run: Run the pipeline and count outcomes without writing.

        Raises:
            BatchCommitError: a batch was rejected; the run stops there.
            StoreError: the collection could not be listed.
        """
        snapshots = self.store.list_all(self.collection)
        logger.info("Starting chantier phase migration: %d chantier(s) in %s%s",
                    len(snapshots), self.collection, " (dry run)" if dry_run else "",
                    extra={"collection": self.collection, "event_type": "migration.started"})

        result = MigrationResult(dry_run=dry_run)
        batch: WriteBatch | None = None

        for record_id, data in snapshots:
            if data.get(MIGRATED_FLAG):
                result.skipped += 1
                logger.debug("Chantier %s already migrated, skipped", record_id)
                continue

            outcome = self.migrate_record(record_id, data)
            result.unmapped_phases += len(outcome.unmapped)
            if not outcome.ok:
                result.failed += 1
                result.failures.append({"chantier_id": record_id, "reason": outcome.reason})
                continue

            result.success += 1
            if dry_run:
                continue

            if batch is None:
                batch = self.store.batch()
            batch.update(self.collection, record_id, outcome.update)
            if len(batch) >= self.batch_size:
                self._commit(batch, result)
                batch = None

        if batch is not None and len(batch) > 0:
            self._commit(batch, result)

        logger.info(
            "Chantier phase migration complete: success=%d failed=%d skipped=%d unmapped_phases=%d batches=%d",
            result.success, result.failed, result.skipped,
            result.unmapped_phases, result.batches_committed,
            extra={"collection": self.collection, "event_type": "migration.completed"},
        )
        return result

    # ── Status ───────────────────────────────────────────────────────────

    def check_migration_status(self) -> dict:
        """Count migrated vs pending chantiers. Read-only."""
        snapshots = self.store.list_all(self.collection)
        migrated = sum(1 for _record_id, data in snapshots if data.get(MIGRATED_FLAG))
        total = len(snapshots)
        return {"total": total, "migrated": migrated, "pending": total - migrated}
