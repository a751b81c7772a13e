"""
Canonical phase catalog: the fixed, ordered set of work stages every
chantier goes through.

The catalog is immutable data. Services receive a ``PhaseCatalog`` instance
instead of reaching for a module global, so tests can substitute a smaller
catalog.

Categories:
    main         : bookend phases (procurement, hand-over)
    gros_oeuvre  : structural work
    second_oeuvre: finishing trades
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

PHASE_CATEGORIES = ("main", "gros_oeuvre", "second_oeuvre")
PHASE_STATUSES = ("pending", "in-progress", "completed", "blocked")


@dataclass(frozen=True)
class StepTemplate:
    """Sub-step of a canonical phase. ``key`` is stable across records."""

    key: str
    name: str
    description: str = ""
    estimated_duration: int = 0

    def to_step_dict(self, step_id: str, progress: float = 0) -> dict:
        return {
            "templateKey": self.key,
            "id": step_id,
            "name": self.name,
            "description": self.description,
            "status": "pending",
            "progress": progress,
            "estimatedDuration": self.estimated_duration,
            "notes": "",
        }


@dataclass(frozen=True)
class PhaseTemplate:
    """Canonical phase definition; ``order`` is unique within a catalog."""

    name: str
    order: int
    category: str = "main"
    description: str = ""
    estimated_duration: int = 0
    steps: tuple[StepTemplate, ...] = field(default_factory=tuple)

    def to_phase_dict(self) -> dict:
        """Default persisted shape of this phase, without id or steps."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "order": self.order,
            "status": "pending",
            "progress": 0,
            "estimatedDuration": self.estimated_duration,
            "assignedTeamMembers": [],
            "requiredMaterials": [],
            "photos": [],
            "notes": "",
        }


class PhaseCatalog:
    """Ordered, read-only collection of ``PhaseTemplate``."""

    def __init__(self, templates: Iterable[PhaseTemplate]):
        items = tuple(sorted(templates, key=lambda t: t.order))
        names = [t.name for t in items]
        orders = [t.order for t in items]
        if len(set(names)) != len(names):
            raise ValueError("Phase catalog contains duplicate phase names")
        if len(set(orders)) != len(orders):
            raise ValueError("Phase catalog contains duplicate phase orders")
        for t in items:
            if t.category not in PHASE_CATEGORIES:
                raise ValueError(f"Unknown phase category {t.category!r} for {t.name!r}")
        self._templates = items
        self._by_name = {t.name: t for t in items}

    def __iter__(self) -> Iterator[PhaseTemplate]:
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    @property
    def templates(self) -> tuple[PhaseTemplate, ...]:
        return self._templates

    def names(self) -> list[str]:
        return [t.name for t in self._templates]

    def get(self, name: str) -> PhaseTemplate | None:
        return self._by_name.get(name)

    def by_category(self, category: str) -> list[PhaseTemplate]:
        return [t for t in self._templates if t.category == category]


def _procurement(key: str, what: str, days: int) -> StepTemplate:
    return StepTemplate(
        key=f"approvisionnement_{key}",
        name="Approvisionnement",
        description=f"Commande et réception {what}",
        estimated_duration=days,
    )


STANDARD_PHASES: tuple[PhaseTemplate, ...] = (
    PhaseTemplate(
        name="Approvisionnement",
        order=1,
        category="main",
        description="Commande et réception des matériaux nécessaires",
        estimated_duration=3,
    ),
    # ── Gros œuvre ───────────────────────────────────────────────────────
    PhaseTemplate(
        name="Fondation",
        order=2,
        category="gros_oeuvre",
        description="Travaux de fondation complets",
        estimated_duration=10,
        steps=(
            _procurement("fondation", "des matériaux pour la fondation", 2),
            StepTemplate("implantation", "Implantation", "Marquage et positionnement des fondations", 1),
            StepTemplate("terrassement", "Terrassement", "Excavation et préparation du terrain", 4),
            StepTemplate("fondation", "Fondation", "Coulage des fondations", 5),
        ),
    ),
    PhaseTemplate(
        name="Élévation",
        order=3,
        category="gros_oeuvre",
        description="Construction des murs et structures verticales",
        estimated_duration=15,
        steps=(
            _procurement("elevation", "des matériaux pour l'élévation", 2),
            StepTemplate("maconnerie", "Maçonnerie", "Construction des murs en maçonnerie", 10),
            StepTemplate("beton_arme", "Éléments béton armé", "Mise en place des éléments en béton armé", 5),
        ),
    ),
    PhaseTemplate(
        name="Coulage",
        order=4,
        category="gros_oeuvre",
        description="Coulage des dalles",
        estimated_duration=3,
        steps=(
            _procurement("coulage", "des matériaux pour le coulage", 1),
            StepTemplate("coulage_dalle", "Coulage dalle", "Coulage de la dalle de plancher", 3),
        ),
    ),
    PhaseTemplate(
        name="Vérification gros œuvre",
        order=5,
        category="gros_oeuvre",
        description="Contrôle qualité du gros œuvre",
        estimated_duration=2,
    ),
    # ── Second œuvre ─────────────────────────────────────────────────────
    PhaseTemplate(
        name="Plomberie",
        order=6,
        category="second_oeuvre",
        description="Installation complète de la plomberie",
        estimated_duration=8,
        steps=(
            _procurement("plomberie", "des matériaux de plomberie", 2),
            StepTemplate("alimentation", "Alimentation", "Installation du réseau d'alimentation en eau", 3),
            StepTemplate("appareillage_plomberie", "Appareillage", "Installation des appareils sanitaires", 3),
            StepTemplate("evacuation", "Évacuation", "Installation du réseau d'évacuation", 2),
        ),
    ),
    PhaseTemplate(
        name="Électricité",
        order=7,
        category="second_oeuvre",
        description="Installation électrique complète",
        estimated_duration=7,
        steps=(
            _procurement("electricite", "des matériaux électriques", 2),
            StepTemplate("fourretage", "Fourretage", "Passage des gaines électriques", 2),
            StepTemplate("cablage", "Câblage", "Installation des câbles électriques", 3),
            StepTemplate("appareillage_electrique", "Appareillage", "Installation des prises et interrupteurs", 2),
        ),
    ),
    PhaseTemplate(
        name="Carrelage",
        order=8,
        category="second_oeuvre",
        description="Pose du carrelage",
        estimated_duration=6,
        steps=(
            _procurement("carrelage", "du carrelage et consommables", 2),
            StepTemplate("pose_carrelage", "Pose carrelage", "Mise en place du carrelage au sol et aux murs", 4),
        ),
    ),
    PhaseTemplate(
        name="Étanchéité",
        order=9,
        category="second_oeuvre",
        description="Travaux d'étanchéité",
        estimated_duration=3,
        steps=(
            _procurement("etancheite", "des produits d'étanchéité", 1),
            StepTemplate("travaux_etancheite", "Travaux d'étanchéité", "Application des solutions d'étanchéité", 2),
        ),
    ),
    PhaseTemplate(
        name="Menuiserie",
        order=10,
        category="second_oeuvre",
        description="Installation des menuiseries",
        estimated_duration=5,
        steps=(
            _procurement("menuiserie", "des menuiseries", 2),
            StepTemplate("pose_menuiserie", "Pose menuiserie", "Installation des portes et fenêtres", 3),
        ),
    ),
    PhaseTemplate(
        name="Faux plafond",
        order=11,
        category="second_oeuvre",
        description="Installation des faux plafonds",
        estimated_duration=4,
        steps=(
            _procurement("faux_plafond", "des matériaux de faux plafond", 2),
            StepTemplate("pose_faux_plafond", "Pose faux plafond", "Installation de la structure et des plaques", 2),
        ),
    ),
    PhaseTemplate(
        name="Peinture",
        order=12,
        category="second_oeuvre",
        description="Travaux de peinture complets",
        estimated_duration=8,
        steps=(
            _procurement("peinture", "de la peinture et accessoires", 2),
            StepTemplate("grattage", "Grattage", "Préparation des surfaces", 2),
            StepTemplate("couche_primaire", "Application couche primaire", "Application de la sous-couche", 3),
            StepTemplate("couche_secondaire", "Application couche secondaire", "Application de la couche de finition", 3),
        ),
    ),
    PhaseTemplate(
        name="Vérification second œuvre",
        order=13,
        category="second_oeuvre",
        description="Contrôle qualité du second œuvre",
        estimated_duration=2,
    ),
    PhaseTemplate(
        name="Clef en main",
        order=14,
        category="main",
        description="Livraison finale du projet",
        estimated_duration=1,
    ),
)


def default_catalog() -> PhaseCatalog:
    """Return the standard 14-phase catalog."""
    return PhaseCatalog(STANDARD_PHASES)
