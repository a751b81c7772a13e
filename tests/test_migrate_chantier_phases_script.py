import importlib

from sitetrack.core.exceptions import BatchCommitError
from sitetrack.services.document_store import SqlWriteBatch


def _script():
    return importlib.import_module("scripts.migrate_chantier_phases")


def _seed(store, legacy_chantier):
    store.set("chantiers", "ch-1", legacy_chantier(("Fondation", 100), ("Plomberie", 50)))
    store.set("chantiers", "ch-2", legacy_chantier(("Toiture", 20)))


def test_status_only(store, legacy_chantier, capsys):
    _seed(store, legacy_chantier)

    assert _script().run(status_only=True) == 0
    assert "[STATUS] total=2 migrated=0 pending=2" in capsys.readouterr().out


def test_dry_run_does_not_persist(store, legacy_chantier, capsys):
    _seed(store, legacy_chantier)

    assert _script().run(dry_run=True) == 0

    out = capsys.readouterr().out
    assert "mode=dry-run" in out
    assert "success=2" in out
    assert "migrated" not in store.get("chantiers", "ch-1")


def test_apply_is_idempotent(store, legacy_chantier, capsys):
    _seed(store, legacy_chantier)
    mod = _script()

    assert mod.run() == 0
    assert store.get("chantiers", "ch-2")["migrated"] is True

    assert mod.run() == 0
    assert "success=0 failed=0 skipped=2" in capsys.readouterr().out


def test_failed_record_sets_exit_code(store, legacy_chantier, capsys):
    _seed(store, legacy_chantier)
    store.set("chantiers", "ch-bad", {"phases": [{"id": "p1", "name": None}]})

    assert _script().run() == 1

    out = capsys.readouterr().out
    assert "[ERROR] chantier_id=ch-bad" in out
    assert "success=2 failed=1" in out


def test_single_chantier(store, legacy_chantier, capsys):
    _seed(store, legacy_chantier)
    mod = _script()

    assert mod.run(chantier_id="ch-1") == 0
    assert mod.run(chantier_id="ghost") == 1

    out = capsys.readouterr().out
    assert "[MIGRATED] chantier_id=ch-1" in out
    assert "[ERROR] chantier_id=ghost" in out


def test_rejected_batch_aborts(store, legacy_chantier, capsys, monkeypatch):
    _seed(store, legacy_chantier)

    def _reject(self):
        raise BatchCommitError("quota exceeded", staged=len(self))

    monkeypatch.setattr(SqlWriteBatch, "_apply", _reject)

    assert _script().run() == 1
    assert "[ABORTED]" in capsys.readouterr().out


def test_main_parses_flags(store, legacy_chantier, capsys):
    _seed(store, legacy_chantier)

    assert _script().main(["--status"]) == 0
    assert "[STATUS]" in capsys.readouterr().out
