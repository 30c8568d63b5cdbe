"""Criterion evaluator: strategies, missing evidence and element extraction."""
from __future__ import annotations

from conftest import collected, evidence, finding, findings, heading, image, link
from evaluators.registry import STRATEGIES, evaluate, evaluate_page
from evidence.types import HeadingFlag, RuleFindings
from schemas.domain import CriterionStatus, EvidenceElement, PageClassification, Strategy


# ══════════════════════════════════════════════════════════════════
#  ANY_VIOLATION
# ══════════════════════════════════════════════════════════════════

def test_matching_violation_is_violation(catalog):
    result = evaluate(catalog.lookup("1.1"), evidence(findings(violations=["image-alt"])))
    assert result.status is CriterionStatus.VIOLATION
    assert [v.rule_id for v in result.violations] == ["image-alt"]
    assert result.notes == catalog.lookup("1.1").notes


def test_no_matching_findings_is_pass(catalog):
    result = evaluate(catalog.lookup("1.1"), evidence(findings(violations=["link-name"], passes=["image-alt"])))
    assert result.status is CriterionStatus.PASS
    assert result.violations == ()


def test_matching_incomplete_is_incomplete(catalog):
    result = evaluate(catalog.lookup("9.1"), evidence(findings(incomplete=["heading-order"])))
    assert result.status is CriterionStatus.INCOMPLETE
    assert [i.rule_id for i in result.incompletes] == ["heading-order"]


def test_violation_beats_incomplete(catalog):
    ev = evidence(findings(violations=["empty-heading"], incomplete=["heading-order"]))
    assert evaluate(catalog.lookup("9.1"), ev).status is CriterionStatus.VIOLATION


# ══════════════════════════════════════════════════════════════════
#  ALL_PASS
# ══════════════════════════════════════════════════════════════════

def test_all_pass_requires_every_rule_to_pass(catalog):
    c85 = catalog.lookup("8.5")
    assert evaluate(c85, evidence(findings(passes=["document-title"]))).status is CriterionStatus.PASS
    assert evaluate(c85, evidence(findings())).status is CriterionStatus.INCOMPLETE
    assert evaluate(c85, evidence(findings(violations=["document-title"]))).status is CriterionStatus.VIOLATION


# ══════════════════════════════════════════════════════════════════
#  Manual fallbacks
# ══════════════════════════════════════════════════════════════════

def test_manual_only_ignores_findings_but_keeps_elements(catalog):
    ev = evidence(findings(violations=["document-title"]), collected(page_flags=["TITLE_GENERIC"]))
    result = evaluate(catalog.lookup("8.6"), ev)
    assert result.status is CriterionStatus.MANUAL
    assert result.elements == (EvidenceElement("document", ("TITLE_GENERIC",)),)


def test_missing_or_failed_findings_fall_back_to_manual(catalog):
    for ev in (None, evidence(None, collected()), evidence(RuleFindings.failed("axe crashed"), collected())):
        for criterion in catalog.criteria:
            result = evaluate(criterion, ev)
            assert result.status is CriterionStatus.MANUAL, criterion.id
            assert result.violations == ()


def test_absent_evidence_has_no_elements(catalog):
    assert evaluate(catalog.lookup("1.1"), None).elements == ()


# ══════════════════════════════════════════════════════════════════
#  Element extraction
# ══════════════════════════════════════════════════════════════════

def test_only_flags_in_the_criterion_set_are_kept(catalog):
    ev = evidence(findings(), collected(images=[image("img.hero", "ALT_ABSENT", "ALT_GENERIC")]))
    assert evaluate(catalog.lookup("1.1"), ev).elements == (EvidenceElement("img.hero", ("ALT_ABSENT",)),)
    assert evaluate(catalog.lookup("1.3"), ev).elements == (EvidenceElement("img.hero", ("ALT_GENERIC",)),)


def test_links_and_headings_are_extracted_in_order(catalog):
    ev = evidence(findings(), collected(
        links=[link("a.more", "Lire la suite", "/a", "GENERIC_LABEL"), link("a.ok", "Contact", "/c")],
        headings=[heading("h1", 1), heading("h3.sub", 3, HeadingFlag("LEVEL_SKIP", 1, 3))],
        page_flags=["NO_H1"],
    ))
    assert evaluate(catalog.lookup("6.1"), ev).elements == (EvidenceElement("a.more", ("GENERIC_LABEL",)),)
    assert evaluate(catalog.lookup("9.1"), ev).elements == (
        EvidenceElement("h3.sub", ("LEVEL_SKIP",)),
        EvidenceElement("document", ("NO_H1",)),
    )


def test_page_flag_not_repeated_when_an_element_has_it(catalog):
    ev = evidence(findings(), collected(
        headings=[heading("h4", 4, "LEVEL_SKIP")],
        page_flags=["LEVEL_SKIP", "MULTIPLE_H1"],
    ))
    selectors = [(e.selector, e.flags) for e in evaluate(catalog.lookup("9.1"), ev).elements]
    assert selectors == [("h4", ("LEVEL_SKIP",)), ("document", ("MULTIPLE_H1",))]


# ══════════════════════════════════════════════════════════════════
#  Whole-page evaluation + registry
# ══════════════════════════════════════════════════════════════════

def test_evaluate_page_follows_catalog_order(catalog):
    assessment = evaluate_page(catalog, "https://exemple.fr/", evidence(findings(passes=["document-title"])))
    assert assessment.url == "https://exemple.fr/"
    assert [c.criterion_id for c in assessment.classifications] == [c.id for c in catalog.criteria]
    assert assessment.classification_for("8.5").status is CriterionStatus.PASS
    assert assessment.classification_for("42.1") is None


def test_registered_strategy_is_used(catalog, monkeypatch):
    calls = []

    def always_violation(criterion, rule_findings, elements):
        calls.append(criterion.id)
        return PageClassification(criterion.id, criterion.title, criterion.theme, CriterionStatus.VIOLATION)

    monkeypatch.setitem(STRATEGIES, Strategy.ALL_PASS, always_violation)
    result = evaluate(catalog.lookup("8.5"), evidence(findings(passes=["document-title"])))
    assert result.status is CriterionStatus.VIOLATION
    assert calls == ["8.5"]


def test_finding_from_rule_engine_shape():
    # Rule engines report "rule"/"impact"; both spellings are accepted.
    f = finding("image-alt")
    assert f.rule_id == "image-alt"
    parsed = RuleFindings.from_dict({
        "violations": [{"rule": "image-alt", "impact": "critical", "description": "d",
                        "helpUrl": "u", "elements": [{"html": "<img>", "target": ["img"]}]}],
        "passes": [],
        "incomplete": [],
    })
    assert parsed.violations[0].rule_id == "image-alt"
    assert parsed.violations[0].severity == "critical"
    assert parsed.violations[0].elements[0].selector == "img"
