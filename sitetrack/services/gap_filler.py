"""Synthesize default phases for canonical phases a chantier does not have yet."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from sitetrack.services.phase_catalog import PhaseCatalog
from sitetrack.services.phase_mapper import new_id

logger = logging.getLogger(__name__)

SYSTEM_MIGRATION_USER = "system_migration"


class GapFiller:
    """Return the canonical phases missing from an already-migrated list."""

    def __init__(
        self,
        catalog: PhaseCatalog,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.catalog = catalog
        self._id_factory = id_factory
        self._clock = clock

    def fill(self, migrated: Iterable[dict]) -> list[dict]:
        """New phases only, in catalog order. Empty when nothing is missing."""
        present = {phase.get("name") for phase in migrated}
        now = self._clock()
        missing: list[dict] = []

        for template in self.catalog:
            if template.name in present:
                continue
            phase = template.to_phase_dict()
            phase["id"] = self._id_factory()
            phase["lastUpdated"] = now
            phase["updatedBy"] = SYSTEM_MIGRATION_USER
            phase["steps"] = [step.to_step_dict(self._id_factory()) for step in template.steps]
            missing.append(phase)

        if missing:
            logger.debug("Gap filling %d canonical phase(s): %s",
                         len(missing), ", ".join(p["name"] for p in missing))
        return missing
