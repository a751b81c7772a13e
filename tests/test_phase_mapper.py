"""
Phase mapper tests.

Covers:
  1. Substring matching (both directions, catalog-order tie-break)
  2. Keyword override rules (defaults + injected policy)
  3. Unmapped phases (None + warning)
  4. Field overlay and step instantiation
  5. Legacy input validation
  6. map_all duplicate handling
"""

import itertools
import logging

import pytest

from sitetrack.core.exceptions import MalformedRecordError
from sitetrack.services.phase_catalog import default_catalog
from sitetrack.services.phase_mapper import LegacyPhase, OverrideRule, PhaseMapper


@pytest.fixture()
def mapper():
    ids = itertools.count(1)
    return PhaseMapper(default_catalog(), id_factory=lambda: f"step-{next(ids)}")


def _legacy(name, progress=0, **fields):
    return {"id": "legacy-1", "name": name, "progress": progress, **fields}


# ── 1. Substring matching ────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "legacy_name, expected",
    [
        ("Terrassement fondation", "Fondation"),
        ("PLOMBERIE", "Plomberie"),
        ("  Peinture intérieure ", "Peinture"),
        ("fonda", "Fondation"),
        ("Faux plafond chambres", "Faux plafond"),
    ],
)
def test_substring_match(mapper, legacy_name, expected):
    assert mapper.match_template(legacy_name).name == expected


def test_first_catalog_match_wins(mapper):
    assert mapper.match_template("Plomberie et Électricité").name == "Plomberie"


def test_catalog_match_takes_precedence_over_overrides(mapper):
    # "gros œuvre" is contained in "Vérification gros œuvre"
    assert mapper.match_template("Gros œuvre").name == "Vérification gros œuvre"


# ── 2. Override rules ────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "legacy_name, expected",
    [
        ("Terrassement", "Fondation"),
        ("Gros oeuvre", "Élévation"),
        ("Toiture", "Coulage"),
        ("Couverture tuiles", "Coulage"),
        ("Finitions", "Peinture"),
    ],
)
def test_default_override_rules(mapper, legacy_name, expected):
    assert mapper.match_template(legacy_name).name == expected


def test_override_rule_needs_every_keyword_group():
    rule = OverrideRule("Élévation", (("gros",), ("œuvre", "oeuvre")))
    assert rule.matches("gros oeuvre")
    assert not rule.matches("gros travaux")


def test_injected_rules_replace_defaults():
    mapper = PhaseMapper(default_catalog(), rules=[OverrideRule("Clef en main", (("toiture",),))])
    assert mapper.match_template("Toiture").name == "Clef en main"
    assert mapper.match_template("Finitions") is None


def test_rule_targeting_unknown_phase_is_rejected():
    with pytest.raises(ValueError):
        PhaseMapper(default_catalog(), rules=[OverrideRule("Toiture", (("toit",),))])


# ── 3. Unmapped ──────────────────────────────────────────────────────────────


def test_unmapped_phase_returns_none_and_warns(mapper, caplog):
    with caplog.at_level(logging.WARNING, logger="sitetrack.services.phase_mapper"):
        assert mapper.map(_legacy("Clôture du terrain")) is None
    assert "Clôture du terrain" in caplog.text


def test_blank_name_is_unmapped(mapper):
    assert mapper.map(_legacy("   ")) is None


# ── 4. Overlay & steps ───────────────────────────────────────────────────────


def test_mapped_phase_keeps_legacy_id_and_fields(mapper):
    legacy = _legacy(
        "Terrassement fondation",
        progress=60,
        status="en_cours",
        notes="Fouilles terminées",
        photos=["https://cdn.example/1.jpg"],
        updatedBy="chef-1",
        assignedTeamMembers=["tm-1"],
        plannedEndDate="2030-01-01T00:00:00+00:00",
    )

    phase = mapper.map(legacy)

    assert phase["id"] == "legacy-1"
    assert phase["name"] == "Fondation"
    assert phase["order"] == 2
    assert phase["category"] == "gros_oeuvre"
    assert phase["progress"] == 60
    assert phase["status"] == "en_cours"
    assert phase["notes"] == "Fouilles terminées"
    assert phase["photos"] == ["https://cdn.example/1.jpg"]
    assert phase["updatedBy"] == "chef-1"
    assert phase["assignedTeamMembers"] == ["tm-1"]
    assert phase["plannedEndDate"] == "2030-01-01T00:00:00+00:00"


def test_absent_legacy_fields_keep_template_defaults(mapper):
    phase = mapper.map({"id": "legacy-9", "name": "Carrelage", "notes": None})

    assert phase["notes"] == ""
    assert phase["progress"] == 0
    assert phase["requiredMaterials"] == []
    assert "actualStartDate" not in phase


def test_steps_get_fresh_ids_and_mirror_phase_progress(mapper):
    phase = mapper.map(_legacy("Fondation", progress=60))

    assert [s["templateKey"] for s in phase["steps"]] == [
        "approvisionnement_fondation", "implantation", "terrassement", "fondation",
    ]
    assert [s["id"] for s in phase["steps"]] == ["step-1", "step-2", "step-3", "step-4"]
    assert all(s["progress"] == 60 for s in phase["steps"])


def test_phase_without_step_templates_has_empty_steps(mapper):
    assert mapper.map(_legacy("Clef en main"))["steps"] == []


def test_mapping_does_not_mutate_input(mapper):
    legacy = _legacy("Fondation", progress=10)
    snapshot = dict(legacy)
    mapper.map(legacy)
    assert legacy == snapshot


# ── 5. Validation ────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "raw",
    [
        "Fondation",
        {"name": "Fondation"},
        {"id": "x"},
        {"id": "x", "name": 42},
        {"id": "x", "name": "Fondation", "progress": "60"},
        {"id": "x", "name": "Fondation", "progress": True},
        {"id": "x", "name": "Fondation", "progress": float("nan")},
        {"id": "x", "name": "Fondation", "progress": float("inf")},
    ],
)
def test_malformed_legacy_phase(raw):
    with pytest.raises(MalformedRecordError):
        LegacyPhase.from_dict(raw)


def test_legacy_phase_only_keeps_present_fields():
    legacy = LegacyPhase.from_dict({"id": "x", "name": "N", "notes": None, "progress": 5, "color": "red"})
    assert legacy.fields == {"progress": 5}
    assert legacy.progress == 5


# ── 6. map_all ───────────────────────────────────────────────────────────────


def test_map_all_drops_unmapped_and_duplicates(mapper):
    raw = [
        {"id": "a", "name": "Fondation", "progress": 100},
        {"id": "b", "name": "Terrassement", "progress": 20},
        {"id": "c", "name": "Clôture", "progress": 0},
        {"id": "d", "name": "Toiture", "progress": 50},
    ]

    migrated, unmapped = mapper.map_all(raw)

    assert [(p["id"], p["name"]) for p in migrated] == [("a", "Fondation"), ("d", "Coulage")]
    assert unmapped == ["Terrassement", "Clôture"]
