"""Criterion catalog: bundled pack contents, caching and validation."""
from __future__ import annotations

import dataclasses
import json

import pytest

from control_packs.loader import CatalogError, load_catalog, parse_catalog, reset_catalog_cache
from schemas.domain import Strategy
from schemas.taxonomy import DUPLICATE_LABEL


# ── Bundled RGAA 4.1 pack ─────────────────────────────────────────

def test_bundled_catalog_shape(catalog):
    assert catalog.version == "4.1"
    assert catalog.total_criteria == 106
    assert catalog.covered_count == 7
    assert catalog.remaining_count == 99
    assert "Images" in catalog.covered_themes
    assert len(catalog.uncovered_themes) == 9
    assert all(t.manual_checklist for t in catalog.uncovered_themes)


def test_lookup(catalog):
    c11 = catalog.lookup("1.1")
    assert c11 is not None
    assert c11.strategy is Strategy.ANY_VIOLATION
    assert "image-alt" in c11.external_rule_ids
    assert "ALT_ABSENT" in c11.evidence_flag_ids
    assert c11.alt_max_length == 80
    assert "logo" in c11.heuristic_patterns["genericLabels"]
    assert catalog.lookup("8.6").strategy is Strategy.MANUAL_ONLY
    assert catalog.lookup("99.9") is None


def test_duplicate_label_flag_belongs_to_link_criterion(catalog):
    assert [c.id for c in catalog.criteria_with_flag(DUPLICATE_LABEL)] == ["6.1"]


def test_catalog_is_immutable(catalog):
    with pytest.raises(dataclasses.FrozenInstanceError):
        catalog.version = "5.0"
    with pytest.raises(dataclasses.FrozenInstanceError):
        catalog.lookup("1.1").strategy = Strategy.MANUAL_ONLY


def test_load_is_cached_until_reset():
    reset_catalog_cache()
    first = load_catalog()
    assert load_catalog() is first
    reset_catalog_cache()
    assert load_catalog() is not first


# ── Validation ────────────────────────────────────────────────────

def _doc(**overrides):
    doc = {
        "version": "4.1",
        "total_criteria": 106,
        "criteria": [
            {"id": "1.1", "title": "t", "theme": "Images", "strategy": "ANY_VIOLATION",
             "external_rule_ids": ["image-alt"], "evidence_flag_ids": []},
            {"id": "8.6", "title": "t", "theme": "Éléments obligatoires", "strategy": "MANUAL_ONLY",
             "external_rule_ids": [], "evidence_flag_ids": ["TITLE_GENERIC"]},
        ],
    }
    doc.update(overrides)
    return doc


def test_manual_only_needs_no_rules():
    catalog = parse_catalog(_doc())
    assert catalog.lookup("8.6").external_rule_ids == frozenset()
    assert not catalog.lookup("8.6").automated


@pytest.mark.parametrize(
    "doc, message",
    [
        (_doc(version=""), "version"),
        (_doc(criteria=[]), "empty"),
        (_doc(criteria=[_doc()["criteria"][0], _doc()["criteria"][0]]), "Duplicate"),
        (_doc(criteria=[{**_doc()["criteria"][0], "strategy": "SOMETIMES"}]), "unknown strategy"),
        (_doc(criteria=[{**_doc()["criteria"][0], "external_rule_ids": []}]), "requires external_rule_ids"),
        (_doc(total_criteria=1), "smaller"),
        (_doc(criteria=[{**_doc()["criteria"][0], "theme": "Sons"}]), "unknown theme"),
        (_doc(criteria=[{**_doc()["criteria"][0], "evidence_flag_ids": ["ALT_PURPLE"]}]), "unknown evidence flag"),
    ],
    ids=["no-version", "empty-criteria", "duplicate-id", "unknown-strategy", "automated-without-rules",
         "total-too-small", "unknown-theme", "unknown-flag"],
)
def test_invalid_documents_are_rejected(doc, message):
    with pytest.raises(CatalogError, match=message):
        parse_catalog(doc)


def test_missing_file(tmp_path):
    with pytest.raises(CatalogError, match="not found"):
        load_catalog(tmp_path / "nope.json")


def test_malformed_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{ not json", encoding="utf-8")
    with pytest.raises(CatalogError, match="not valid JSON"):
        load_catalog(path)


def test_custom_path_is_cached_separately(tmp_path):
    path = tmp_path / "mini.json"
    path.write_text(json.dumps(_doc()), encoding="utf-8")
    reset_catalog_cache()
    try:
        mini = load_catalog(path)
        assert mini.covered_count == 2
        assert load_catalog(path) is mini
        assert load_catalog() is not mini
    finally:
        reset_catalog_cache()


def test_theme_defaults_from_criterion_number():
    raw = {k: v for k, v in _doc()["criteria"][0].items() if k != "theme"}
    catalog = parse_catalog(_doc(criteria=[raw]))
    assert catalog.lookup("1.1").theme == "Images"
