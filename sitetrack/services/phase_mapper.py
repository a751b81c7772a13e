"""
Legacy phase → canonical phase mapping.

Legacy chantiers carry free-text phase names ("Terrassement fondation",
"Gros œuvre", "Finitions") and no sub-steps. Each legacy entry is matched to
a canonical ``PhaseTemplate`` and rebuilt in the canonical shape, keeping
every operational field the legacy entry actually has.

Matching, first hit wins:
    1. case-insensitive substring match either way, in catalog order
    2. keyword override rules, in rule order
    3. no match → warning, entry dropped
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from sitetrack.core.exceptions import MalformedRecordError
from sitetrack.services.phase_catalog import PhaseCatalog, PhaseTemplate

logger = logging.getLogger(__name__)

# Legacy fields carried onto the migrated phase when present
OPERATIONAL_FIELDS = (
    "progress",
    "status",
    "notes",
    "photos",
    "lastUpdated",
    "updatedBy",
    "assignedTeamMembers",
    "requiredMaterials",
    "plannedStartDate",
    "plannedEndDate",
    "actualStartDate",
    "actualEndDate",
)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class LegacyPhase:
    """Read-only view of one legacy phase entry.

    ``fields`` only holds operational keys that are present and not None, so
    callers never have to guess whether a key exists.
    """

    id: str
    name: str
    fields: dict = field(default_factory=dict)

    @property
    def progress(self) -> float:
        return self.fields.get("progress", 0)

    @classmethod
    def from_dict(cls, raw: Any, index: int | None = None) -> "LegacyPhase":
        where = {"phase_index": index} if index is not None else {}
        if not isinstance(raw, dict):
            raise MalformedRecordError("Legacy phase is not an object", details=where)

        phase_id = raw.get("id")
        if not isinstance(phase_id, str) or not phase_id:
            raise MalformedRecordError("Legacy phase has no id", details=where)

        name = raw.get("name")
        if not isinstance(name, str):
            raise MalformedRecordError(
                f"Legacy phase {phase_id} has no name", details={**where, "id": phase_id}
            )

        progress = raw.get("progress")
        if progress is not None and (
            isinstance(progress, bool)
            or not isinstance(progress, (int, float))
            or not math.isfinite(progress)
        ):
            raise MalformedRecordError(
                f"Legacy phase {phase_id} has non-numeric or non-finite progress {progress!r}",
                details={**where, "id": phase_id},
            )

        fields = {k: raw[k] for k in OPERATIONAL_FIELDS if raw.get(k) is not None}
        return cls(id=phase_id, name=name, fields=fields)


@dataclass(frozen=True)
class OverrideRule:
    """Keyword rule routing a legacy name to a canonical phase.

    ``all_of`` is a tuple of keyword groups: every group must have at least
    one keyword contained in the lower-cased legacy name.
    """

    target: str
    all_of: tuple[tuple[str, ...], ...]
    note: str = ""

    def matches(self, normalized_name: str) -> bool:
        return all(
            any(keyword in normalized_name for keyword in group)
            for group in self.all_of
        )


DEFAULT_OVERRIDE_RULES: tuple[OverrideRule, ...] = (
    OverrideRule("Fondation", (("fondation", "terrassement"),)),
    OverrideRule("Élévation", (("gros",), ("œuvre", "oeuvre"))),
    # Roofing has no canonical counterpart; Coulage is a placeholder bucket
    # pending product-owner review.
    OverrideRule(
        "Coulage",
        (("toiture", "couverture"),),
        note="placeholder: no canonical roofing phase",
    ),
    OverrideRule("Peinture", (("finition",),)),
)


class PhaseMapper:
    """Map legacy phase entries onto a ``PhaseCatalog``."""

    def __init__(
        self,
        catalog: PhaseCatalog,
        rules: Iterable[OverrideRule] = DEFAULT_OVERRIDE_RULES,
        id_factory: Callable[[], str] = new_id,
    ):
        self.catalog = catalog
        self.rules = tuple(rules)
        self._id_factory = id_factory
        for rule in self.rules:
            if catalog.get(rule.target) is None:
                raise ValueError(f"Override rule targets unknown phase {rule.target!r}")

    def match_template(self, legacy_name: str) -> PhaseTemplate | None:
        normalized = legacy_name.strip().lower()
        if not normalized:
            return None

        for template in self.catalog:
            candidate = template.name.lower()
            if candidate in normalized or normalized in candidate:
                return template

        for rule in self.rules:
            if rule.matches(normalized):
                if rule.note:
                    logger.info("Legacy phase %r routed by override rule to %s (%s)",
                                legacy_name, rule.target, rule.note)
                return self.catalog.get(rule.target)
        return None

    def map(self, legacy: LegacyPhase | dict) -> dict | None:
        """Return the migrated phase dict, or None when nothing matches."""
        if not isinstance(legacy, LegacyPhase):
            legacy = LegacyPhase.from_dict(legacy)

        template = self.match_template(legacy.name)
        if template is None:
            logger.warning("No canonical phase for legacy phase %r (id=%s)", legacy.name, legacy.id)
            return None

        phase = template.to_phase_dict()
        phase.update(legacy.fields)
        phase["id"] = legacy.id
        # Sub-step progress is not tracked in legacy data; mirror the phase value
        phase["steps"] = [
            step.to_step_dict(self._id_factory(), progress=legacy.progress)
            for step in template.steps
        ]
        return phase

    def map_all(self, raw_phases: Iterable[Any]) -> tuple[list[dict], list[str]]:
        """Map a record's legacy phase list.

        Returns ``(migrated, unmapped_names)``. When two legacy entries land on
        the same canonical phase, the first one wins and the others count as
        unmapped.
        """
        migrated: list[dict] = []
        unmapped: list[str] = []
        seen: set[str] = set()

        for index, raw in enumerate(raw_phases):
            legacy = LegacyPhase.from_dict(raw, index=index)
            phase = self.map(legacy)
            if phase is None:
                unmapped.append(legacy.name)
                continue
            if phase["name"] in seen:
                logger.warning(
                    "Legacy phase %r (id=%s) duplicates canonical phase %s, dropped",
                    legacy.name, legacy.id, phase["name"],
                )
                unmapped.append(legacy.name)
                continue
            seen.add(phase["name"])
            migrated.append(phase)

        return migrated, unmapped
