"""
Chantier aggregates: global progress and status classification.

Everything here is a pure function of its inputs. "Now" is always passed in
so results are reproducible in tests and scripts.

Status classification, first rule that applies wins:
    completed: every phase at 100 %
    overdue:   now is past plannedEndDate
    pending:   nothing started yet (global progress 0)
    at_risk:   a phase is blocked, or the deadline is within the policy
               window while global progress is under the policy threshold
    on_track:  otherwise
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

from sitetrack.core.exceptions import MalformedRecordError


class ChantierStatus:
    COMPLETED = "completed"
    OVERDUE = "overdue"
    PENDING = "pending"
    AT_RISK = "at_risk"
    ON_TRACK = "on_track"

    ALL = (COMPLETED, OVERDUE, PENDING, AT_RISK, ON_TRACK)


@dataclass(frozen=True)
class StatusPolicy:
    """Thresholds for the at-risk classification."""

    at_risk_window_days: int = 14
    at_risk_progress_threshold: float = 80.0
    blocked_is_at_risk: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "StatusPolicy":
        return cls(
            at_risk_window_days=int(config.get("STATUS_AT_RISK_WINDOW_DAYS", cls.at_risk_window_days)),
            at_risk_progress_threshold=float(
                config.get("STATUS_AT_RISK_PROGRESS_THRESHOLD", cls.at_risk_progress_threshold)
            ),
            blocked_is_at_risk=bool(config.get("STATUS_BLOCKED_IS_AT_RISK", cls.blocked_is_at_risk)),
        )


DEFAULT_POLICY = StatusPolicy()


@dataclass(frozen=True)
class Aggregates:
    global_progress: float
    status: str


def to_datetime(value: Any) -> datetime | None:
    """Coerce a stored timestamp into an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), dates, ISO-8601
    strings, ``{"seconds": ...}`` / ``{"_seconds": ...}`` maps as exported by
    Firestore, and objects exposing ``to_datetime()``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return to_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            raise MalformedRecordError(f"Unparseable timestamp {value!r}") from None
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)):
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if hasattr(value, "to_datetime"):
        return to_datetime(value.to_datetime())
    raise MalformedRecordError(f"Unsupported timestamp value {value!r}")


def _clamp(value: float) -> float:
    value = float(value)
    if math.isnan(value):
        raise MalformedRecordError("Progress is NaN")
    return max(0.0, min(100.0, value))


def calculate_phase_progress(phase: Mapping[str, Any]) -> float:
    """Mean step progress when the phase has steps, else the phase's own progress."""
    steps = phase.get("steps") or []
    if steps:
        return sum(_clamp(s.get("progress") or 0) for s in steps) / len(steps)
    return _clamp(phase.get("progress") or 0)


def calculate_global_progress(phases: Iterable[Mapping[str, Any]]) -> float:
    """Arithmetic mean over phases, each phase weighted equally, in [0, 100]."""
    values = [calculate_phase_progress(p) for p in phases]
    if not values:
        return 0.0
    return round(_clamp(sum(values) / len(values)), 1)


def classify_status(
    phases: list[Mapping[str, Any]],
    planned_end_date: Any,
    now: datetime,
    policy: StatusPolicy = DEFAULT_POLICY,
) -> str:
    """Classify a chantier. See module docstring for the rule order."""
    now = to_datetime(now)
    end = to_datetime(planned_end_date)

    if phases and all(calculate_phase_progress(p) >= 100 for p in phases):
        return ChantierStatus.COMPLETED
    if end is not None and now > end:
        return ChantierStatus.OVERDUE

    global_progress = calculate_global_progress(phases)
    if global_progress == 0:
        return ChantierStatus.PENDING

    if policy.blocked_is_at_risk and any(p.get("status") == "blocked" for p in phases):
        return ChantierStatus.AT_RISK
    if (
        end is not None
        and end - now <= timedelta(days=policy.at_risk_window_days)
        and global_progress < policy.at_risk_progress_threshold
    ):
        return ChantierStatus.AT_RISK
    return ChantierStatus.ON_TRACK


def recompute(
    phases: list[Mapping[str, Any]],
    planned_end_date: Any,
    now: datetime,
    policy: StatusPolicy = DEFAULT_POLICY,
) -> Aggregates:
    return Aggregates(
        global_progress=calculate_global_progress(phases),
        status=classify_status(phases, planned_end_date, now, policy),
    )
