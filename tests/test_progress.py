"""
Aggregate recalculation tests.

Covers:
  1. Phase / global progress (step mean, clamping, rounding)
  2. Status classification order
  3. Timestamp coercion
  4. Policy from Flask config
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from sitetrack.core.exceptions import MalformedRecordError
from sitetrack.services.progress import (
    ChantierStatus,
    StatusPolicy,
    calculate_global_progress,
    calculate_phase_progress,
    classify_status,
    recompute,
    to_datetime,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _phase(progress, status="in-progress", steps=None):
    phase = {"progress": progress, "status": status}
    if steps is not None:
        phase["steps"] = [{"progress": p} for p in steps]
    return phase


# ── 1. Progress ──────────────────────────────────────────────────────────────


def test_phase_progress_is_step_mean_when_steps_exist():
    assert calculate_phase_progress(_phase(0, steps=[100, 50, 0, 50])) == 50


def test_phase_progress_falls_back_to_own_progress():
    assert calculate_phase_progress(_phase(35, steps=[])) == 35
    assert calculate_phase_progress({"progress": None}) == 0


def test_progress_is_clamped():
    assert calculate_phase_progress(_phase(140)) == 100
    assert calculate_phase_progress(_phase(-20)) == 0


def test_global_progress_weights_phases_equally_and_rounds():
    phases = [_phase(60, steps=[60, 60, 60, 60])] + [_phase(0) for _ in range(13)]
    assert calculate_global_progress(phases) == 4.3


def test_global_progress_of_no_phases_is_zero():
    assert calculate_global_progress([]) == 0


def test_nan_progress_is_rejected():
    with pytest.raises(MalformedRecordError):
        calculate_phase_progress(_phase(0, steps=[50, float("nan")]))
    with pytest.raises(MalformedRecordError):
        calculate_global_progress([_phase(float("nan"))])


# ── 2. Status ────────────────────────────────────────────────────────────────


def test_completed_wins_even_past_deadline():
    phases = [_phase(100), _phase(100, steps=[100, 100])]
    assert classify_status(phases, NOW - timedelta(days=30), NOW) == ChantierStatus.COMPLETED


def test_overdue_when_past_planned_end():
    phases = [_phase(50), _phase(0)]
    assert classify_status(phases, NOW - timedelta(days=1), NOW) == ChantierStatus.OVERDUE


def test_pending_when_nothing_started():
    assert classify_status([_phase(0, "pending")], None, NOW) == ChantierStatus.PENDING


def test_no_phases_is_pending():
    assert classify_status([], None, NOW) == ChantierStatus.PENDING


def test_blocked_phase_is_at_risk():
    phases = [_phase(50, "blocked"), _phase(90)]
    assert classify_status(phases, None, NOW) == ChantierStatus.AT_RISK


def test_blocked_rule_can_be_disabled():
    phases = [_phase(50, "blocked"), _phase(90)]
    policy = StatusPolicy(blocked_is_at_risk=False)
    assert classify_status(phases, None, NOW, policy) == ChantierStatus.ON_TRACK


@pytest.mark.parametrize(
    "days_left, progress, expected",
    [
        (10, 50, ChantierStatus.AT_RISK),
        (14, 79, ChantierStatus.AT_RISK),
        (10, 85, ChantierStatus.ON_TRACK),
        (30, 50, ChantierStatus.ON_TRACK),
    ],
)
def test_deadline_window(days_left, progress, expected):
    assert classify_status([_phase(progress)], NOW + timedelta(days=days_left), NOW) == expected


def test_policy_window_and_threshold_are_configurable():
    policy = StatusPolicy(at_risk_window_days=60, at_risk_progress_threshold=95)
    phases = [_phase(90)]
    assert classify_status(phases, NOW + timedelta(days=30), NOW, policy) == ChantierStatus.AT_RISK


def test_on_track_without_deadline():
    assert classify_status([_phase(40)], None, NOW) == ChantierStatus.ON_TRACK


def test_recompute_returns_both_aggregates():
    aggregates = recompute([_phase(100), _phase(0)], "2025-12-31T00:00:00Z", NOW)
    assert aggregates.global_progress == 50
    assert aggregates.status == ChantierStatus.ON_TRACK


# ── 3. Timestamps ────────────────────────────────────────────────────────────


class _FirestoreTimestamp:
    def to_datetime(self):
        return datetime(2025, 1, 2, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value, expected",
    [
        (datetime(2025, 1, 2), datetime(2025, 1, 2, tzinfo=timezone.utc)),
        (date(2025, 1, 2), datetime(2025, 1, 2, tzinfo=timezone.utc)),
        ("2025-01-02T00:00:00Z", datetime(2025, 1, 2, tzinfo=timezone.utc)),
        ({"seconds": 1735776000}, datetime(2025, 1, 2, tzinfo=timezone.utc)),
        ({"_seconds": 1735776000, "_nanoseconds": 0}, datetime(2025, 1, 2, tzinfo=timezone.utc)),
        (_FirestoreTimestamp(), datetime(2025, 1, 2, tzinfo=timezone.utc)),
        (None, None),
    ],
)
def test_to_datetime(value, expected):
    assert to_datetime(value) == expected


@pytest.mark.parametrize("value", ["next tuesday", 42, {"when": "soon"}])
def test_to_datetime_rejects_garbage(value):
    with pytest.raises(MalformedRecordError):
        to_datetime(value)


# ── 4. Policy config ─────────────────────────────────────────────────────────


def test_policy_from_config():
    policy = StatusPolicy.from_config({
        "STATUS_AT_RISK_WINDOW_DAYS": "7",
        "STATUS_AT_RISK_PROGRESS_THRESHOLD": "60",
        "STATUS_BLOCKED_IS_AT_RISK": False,
    })
    assert policy == StatusPolicy(7, 60.0, False)


def test_policy_from_app_config_uses_defaults(app):
    assert StatusPolicy.from_config(app.config) == StatusPolicy()
