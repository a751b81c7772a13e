"""
Legacy chantier phases → canonical phase catalog migration script.

Rewrites each chantier's legacy `phases` list into the 14 canonical phases,
fills in the phases the legacy data never had, and recomputes
`globalProgress` / `status`.

Usage:
    APP_ENV=development python scripts/migrate_chantier_phases.py --status
    APP_ENV=development python scripts/migrate_chantier_phases.py --dry-run
    APP_ENV=production  python scripts/migrate_chantier_phases.py
    APP_ENV=production  python scripts/migrate_chantier_phases.py --chantier-id ch-123

Idempotency:
    Migrated chantiers carry `migrated: true` and are skipped, so the script is
    safe to re-run after a partial failure (failed chantiers are retried).

Exit codes:
    0  every processed chantier migrated
    1  at least one chantier failed, or a write batch was rejected
"""

from __future__ import annotations

import argparse
import sys

# Allow running directly: `python scripts/migrate_chantier_phases.py`
if __name__ == "__main__" and __package__ is None:
    import os

    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flask import has_app_context

from sitetrack import create_app
from sitetrack.core.exceptions import BatchCommitError
from sitetrack.services.chantier_migration_service import ChantierMigrationService


def run(app=None, *, dry_run: bool = False, chantier_id: str | None = None, status_only: bool = False) -> int:
    """Run the requested action and return an exit code.

    When called from within an existing app context (e.g. pytest), that
    context and its db.session are reused.
    """
    if has_app_context():
        return _run(dry_run, chantier_id, status_only)

    if app is None:
        app = create_app()
    with app.app_context():
        return _run(dry_run, chantier_id, status_only)


def _run(dry_run: bool, chantier_id: str | None, status_only: bool) -> int:
    service = ChantierMigrationService.from_app()

    if status_only:
        status = service.check_migration_status()
        print(f"[STATUS] total={status['total']} migrated={status['migrated']} pending={status['pending']}")
        return 0

    if chantier_id:
        ok = service.migrate_chantier(chantier_id)
        print(f"[{'MIGRATED' if ok else 'ERROR'}] chantier_id={chantier_id}")
        return 0 if ok else 1

    try:
        result = service.migrate_all_chantiers(dry_run=dry_run)
    except BatchCommitError as exc:
        print(
            f"[ABORTED] batch rejected after {exc.committed_batches} committed batch(es): {exc}"
        )
        return 1

    for failure in result.failures:
        print(f"[ERROR] chantier_id={failure['chantier_id']} error={failure['reason']}")
    print(
        "[SUMMARY] "
        f"mode={'dry-run' if dry_run else 'apply'} "
        f"success={result.success} "
        f"failed={result.failed} "
        f"skipped={result.skipped} "
        f"unmapped_phases={result.unmapped_phases} "
        f"batches={result.batches_committed}"
    )
    return 0 if result.failed == 0 else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Migrate chantiers from legacy phases to the canonical phase catalog."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Run the pipeline without writing")
    mode.add_argument("--chantier-id", help="Migrate a single chantier")
    mode.add_argument("--status", action="store_true", help="Print migration counters and exit")
    args = parser.parse_args(argv)

    return run(dry_run=args.dry_run, chantier_id=args.chantier_id, status_only=args.status)


if __name__ == "__main__":
    raise SystemExit(main())
