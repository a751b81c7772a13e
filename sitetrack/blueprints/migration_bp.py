"""
Chantier phase migration Blueprint — admin API behind the migration panel.

Endpoints:
    GET  /api/v1/admin/migrations/chantier-phases/status           — {total, migrated, pending}
    POST /api/v1/admin/migrations/chantier-phases/run              — migrate all (body: {"dry_run": bool})
    POST /api/v1/admin/migrations/chantier-phases/chantiers/<id>   — migrate one chantier

Both run endpoints are safe to call repeatedly: migrated chantiers are skipped.
They are rate limited in middleware/rate_limiter.py; status is not.
"""

import logging

from flask import Blueprint, jsonify, request

from sitetrack.core.exceptions import BatchCommitError, StoreError
from sitetrack.services.chantier_migration_service import RECORD_NOT_FOUND, ChantierMigrationService
from sitetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migration_bp = Blueprint(
    "migration_bp", __name__, url_prefix="/api/v1/admin/migrations/chantier-phases"
)


@migration_bp.route("/status", methods=["GET"])
def migration_status():
    try:
        status = ChantierMigrationService.from_app().check_migration_status()
    except StoreError as exc:
        logger.error("Migration status check failed: %s", exc)
        return api_error(E.DATABASE, "Could not read chantiers")
    return jsonify(status), 200


@migration_bp.route("/run", methods=["POST"])
def run_migration():
    body = request.get_json(silent=True) or {}
    dry_run = body.get("dry_run", False)
    if not isinstance(dry_run, bool):
        return api_error(E.VALIDATION_INVALID, "dry_run must be a boolean")

    service = ChantierMigrationService.from_app()
    try:
        result = service.migrate_all_chantiers(dry_run=dry_run)
    except BatchCommitError as exc:
        logger.error("Chantier migration aborted: %s", exc)
        return api_error(
            E.DATABASE,
            "Migration aborted: a write batch was rejected. Already committed batches stand; "
            "re-run once the store is healthy.",
            details={"committed_batches": exc.committed_batches, "staged": exc.staged},
        )
    except StoreError as exc:
        logger.error("Chantier migration could not start: %s", exc)
        return api_error(E.DATABASE, "Could not read chantiers")

    return jsonify(result.to_dict()), 200


@migration_bp.route("/chantiers/<chantier_id>", methods=["POST"])
def migrate_one(chantier_id):
    """Migrate one chantier; the record is read once, by the service."""
    service = ChantierMigrationService.from_app()
    try:
        outcome = service.migrate_chantier_outcome(chantier_id)
    except StoreError as exc:
        logger.error("Could not read chantier %s: %s", chantier_id, exc)
        return api_error(E.DATABASE, "Could not read chantier")
    if outcome.reason == RECORD_NOT_FOUND:
        return api_error(E.NOT_FOUND, f"Chantier {chantier_id} not found")

    body = {"chantier_id": chantier_id, "success": outcome.ok}
    if not outcome.ok:
        body["reason"] = outcome.reason
    return jsonify(body), 200 if outcome.ok else 422
