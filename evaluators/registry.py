"""Evaluator registry: maps evaluation strategies to strategy functions.

Usage:
    from evaluators.registry import evaluate, evaluate_page
    classification = evaluate(catalog.lookup("1.1"), evidence)
    assessment = evaluate_page(catalog, url, evidence)

Classification is pure and synchronous.  It never raises on missing or
failed evidence: the verdict falls back to ``manual`` instead of being
guessed.
"""
from __future__ import annotations

from typing import Callable

from control_packs.loader import Catalog, Criterion
from evidence.types import CollectedEvidence, PageEvidence, RuleFindings
from schemas.domain import (
    CriterionStatus,
    EvidenceElement,
    PageAssessment,
    PageClassification,
    Strategy,
)
from schemas.taxonomy import DOCUMENT_SELECTOR


# Type: (criterion, findings, elements) -> PageClassification
# Strategies only ever see findings that are present and error-free.
StrategyFn = Callable[[Criterion, RuleFindings, tuple[EvidenceElement, ...]], PageClassification]


# ── Registry ──────────────────────────────────────────────────────
STRATEGIES: dict[Strategy, StrategyFn] = {}


def register_strategy(strategy: Strategy) -> Callable[[StrategyFn], StrategyFn]:
    """Register a strategy function for *strategy*."""
    def _decorator(fn: StrategyFn) -> StrategyFn:
        STRATEGIES[strategy] = fn
        return fn
    return _decorator


def _classification(
    criterion: Criterion,
    status: CriterionStatus,
    elements: tuple[EvidenceElement, ...],
    violations=(),
    incompletes=(),
) -> PageClassification:
    return PageClassification(
        criterion_id=criterion.id,
        title=criterion.title,
        theme=criterion.theme,
        status=status,
        violations=tuple(violations),
        incompletes=tuple(incompletes),
        elements=elements,
        notes=criterion.notes,
    )


# ══════════════════════════════════════════════════════════════════
#  Strategies
# ══════════════════════════════════════════════════════════════════

@register_strategy(Strategy.ANY_VIOLATION)
def _any_violation(criterion, findings, elements):
    rules = criterion.external_rule_ids
    violations = [v for v in findings.violations if v.rule_id in rules]
    incompletes = [i for i in findings.incomplete if i.rule_id in rules]

    if violations:
        status = CriterionStatus.VIOLATION
    elif incompletes:
        status = CriterionStatus.INCOMPLETE
    else:
        status = CriterionStatus.PASS
    return _classification(criterion, status, elements, violations, incompletes)


@register_strategy(Strategy.ALL_PASS)
def _all_pass(criterion, findings, elements):
    rules = criterion.external_rule_ids
    violations = [v for v in findings.violations if v.rule_id in rules]
    incompletes = [i for i in findings.incomplete if i.rule_id in rules]

    if violations:
        return _classification(criterion, CriterionStatus.VIOLATION, elements, violations, incompletes)
    # Pass only when every mapped rule actually ran and passed.
    if rules <= findings.passed_rule_ids:
        return _classification(criterion, CriterionStatus.PASS, elements, (), incompletes)
    return _classification(criterion, CriterionStatus.INCOMPLETE, elements, (), incompletes)


# ══════════════════════════════════════════════════════════════════
#  Evidence element extraction
# ══════════════════════════════════════════════════════════════════

def extract_elements(
    criterion: Criterion,
    collected: CollectedEvidence | None,
) -> tuple[EvidenceElement, ...]:
    """Collect elements whose flags intersect the criterion's flag set.

    Order: images, links, headings, then page-level heading flags on the
    ``document`` selector (skipped when an element already carries the
    same flag).
    """
    if collected is None:
        return ()

    relevant = criterion.evidence_flag_ids
    elements: list[EvidenceElement] = []

    for img in collected.images:
        matching = tuple(f for f in img.flags if f in relevant)
        if matching:
            elements.append(EvidenceElement(img.selector, matching))

    for link in collected.links:
        matching = tuple(f for f in link.flags if f in relevant)
        if matching:
            elements.append(EvidenceElement(link.selector, matching))

    for heading in collected.headings.headings:
        for flag in heading.flag_ids:
            if flag in relevant:
                elements.append(EvidenceElement(heading.selector, (flag,)))

    for flag in collected.headings.flags:
        if flag not in relevant:
            continue
        if any(flag in e.flags for e in elements):
            continue
        elements.append(EvidenceElement(DOCUMENT_SELECTOR, (flag,)))

    return tuple(elements)


# ══════════════════════════════════════════════════════════════════
#  Public API
# ══════════════════════════════════════════════════════════════════

def evaluate(criterion: Criterion, evidence: PageEvidence | None) -> PageClassification:
    """Classify one criterion for one page."""
    elements = extract_elements(criterion, evidence.collected if evidence else None)

    if criterion.strategy is Strategy.MANUAL_ONLY:
        return _classification(criterion, CriterionStatus.MANUAL, elements)

    findings = evidence.findings if evidence else None
    if findings is None or not findings.ok:
        return _classification(criterion, CriterionStatus.MANUAL, elements)

    strategy_fn = STRATEGIES.get(criterion.strategy)
    if strategy_fn is None:
        return _classification(criterion, CriterionStatus.MANUAL, elements)
    return strategy_fn(criterion, findings, elements)


def evaluate_page(catalog: Catalog, url: str, evidence: PageEvidence | None) -> PageAssessment:
    """Classify every catalog criterion for one page, in catalog order."""
    return PageAssessment(
        url=url,
        classifications=tuple(evaluate(c, evidence) for c in catalog.criteria),
    )
