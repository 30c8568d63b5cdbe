"""Cross-page aggregation: folds per-page classifications into one verdict per criterion.

Takes the ``PageAssessment`` list produced by the evaluator and returns:

  - **One aggregated entry per catalog criterion** (catalog order)
  - **Duplicate link labels** found across pages
  - **Top issues** ranked by the number of violating pages
  - **The page assessments** after duplicate-label upgrades

Design rules:
  - Status precedence: violation > incomplete > manual (no pass) > pass > manual.
  - With zero pages every criterion stays ``pass``.
  - Duplicate-label detection runs *before* folding so the aggregate
    reflects the upgraded page statuses.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping, Sequence
from urllib.parse import urldefrag, urljoin

import structlog

from control_packs.loader import Catalog
from engine.scoring import top_issues
from evidence.types import CollectedEvidence
from schemas.domain import (
    AggregatedCriterion,
    CriterionStatus,
    EvidenceElement,
    PageAssessment,
    PageClassification,
    TopIssue,
)
from schemas.taxonomy import DUPLICATE_LABEL

logger = structlog.get_logger(__name__)


@dataclass
class AggregationResult:
    criteria: list[AggregatedCriterion]
    top_issues: list[TopIssue]
    duplicate_labels: list[str] = field(default_factory=list)
    pages: list[PageAssessment] = field(default_factory=list)


# ══════════════════════════════════════════════════════════════════
#  Duplicate link labels
# ══════════════════════════════════════════════════════════════════

def normalize_label(label: str | None) -> str:
    return (label or "").strip().casefold()


def resolve_destination(page_url: str, href: str) -> str:
    """Absolute destination of *href* seen on *page_url*, fragment dropped."""
    absolute, _fragment = urldefrag(urljoin(page_url, href.strip()))
    return absolute


def find_duplicate_labels(raw_evidence: Mapping[str, CollectedEvidence | None]) -> set[str]:
    """Normalised labels that point at more than one distinct destination."""
    destinations: dict[str, set[str]] = {}
    for page_url, collected in raw_evidence.items():
        if collected is None:
            continue
        for link in collected.links:
            label = normalize_label(link.accessible_label)
            if not label:
                continue
            seen = destinations.setdefault(label, set())
            if link.href:
                seen.add(resolve_destination(page_url, link.href))
    return {label for label, urls in destinations.items() if len(urls) > 1}


def _flag_duplicates(
    classification: PageClassification,
    collected: CollectedEvidence,
    duplicates: set[str],
) -> PageClassification:
    elements = list(classification.elements)
    hit = False
    for link in collected.links:
        if normalize_label(link.accessible_label) not in duplicates:
            continue
        hit = True
        for i, el in enumerate(elements):
            if el.selector == link.selector:
                if DUPLICATE_LABEL not in el.flags:
                    elements[i] = EvidenceElement(el.selector, el.flags + (DUPLICATE_LABEL,))
                break
        else:
            elements.append(EvidenceElement(link.selector, (DUPLICATE_LABEL,)))

    if not hit:
        return classification
    status = classification.status
    if status is CriterionStatus.PASS:
        status = CriterionStatus.VIOLATION
    return replace(classification, elements=tuple(elements), status=status)


def apply_duplicate_labels(
    catalog: Catalog,
    pages: Sequence[PageAssessment],
    raw_evidence: Mapping[str, CollectedEvidence | None],
) -> tuple[list[PageAssessment], set[str]]:
    """Flag duplicate-label links on every page and upgrade pass to violation.

    Only criteria whose flag set contains ``DUPLICATE_LABEL`` are touched.
    """
    duplicates = find_duplicate_labels(raw_evidence)
    if not duplicates:
        return list(pages), duplicates

    targets = {c.id for c in catalog.criteria_with_flag(DUPLICATE_LABEL)}
    updated: list[PageAssessment] = []
    for page in pages:
        collected = raw_evidence.get(page.url)
        if collected is None or not targets:
            updated.append(page)
            continue
        classifications = tuple(
            _flag_duplicates(c, collected, duplicates) if c.criterion_id in targets else c
            for c in page.classifications
        )
        updated.append(replace(page, classifications=classifications))

    logger.info("duplicate_labels_detected", labels=len(duplicates), pages=len(updated))
    return updated, duplicates


# ══════════════════════════════════════════════════════════════════
#  Folding
# ══════════════════════════════════════════════════════════════════

def resolve_status(agg: AggregatedCriterion) -> CriterionStatus:
    """Final status by precedence over the per-page buckets."""
    if agg.pages_violating:
        return CriterionStatus.VIOLATION
    if agg.pages_incomplete:
        return CriterionStatus.INCOMPLETE
    if agg.pages_manual and not agg.pages_pass:
        return CriterionStatus.MANUAL
    if agg.pages_pass:
        return CriterionStatus.PASS
    return CriterionStatus.MANUAL


_BUCKET = {
    CriterionStatus.VIOLATION: "pages_violating",
    CriterionStatus.PASS: "pages_pass",
    CriterionStatus.MANUAL: "pages_manual",
    CriterionStatus.INCOMPLETE: "pages_incomplete",
}


def aggregate(
    catalog: Catalog,
    pages: Sequence[PageAssessment],
    raw_evidence: Mapping[str, CollectedEvidence | None] | None = None,
) -> AggregationResult:
    """Fold page assessments into one entry per catalog criterion.

    *raw_evidence* maps page url to its collected evidence and enables
    duplicate-label detection.
    """
    duplicates: set[str] = set()
    if raw_evidence:
        pages, duplicates = apply_duplicate_labels(catalog, pages, raw_evidence)
    else:
        pages = list(pages)

    by_id: dict[str, AggregatedCriterion] = {
        c.id: AggregatedCriterion(criterion_id=c.id, title=c.title, theme=c.theme)
        for c in catalog.criteria
    }

    for page in pages:
        for classification in page.classifications:
            agg = by_id.get(classification.criterion_id)
            if agg is None:
                continue
            bucket = getattr(agg, _BUCKET[classification.status])
            # Buckets hold distinct urls.
            if page.url not in bucket:
                bucket.append(page.url)

    # Zero pages keeps the default pass on every criterion.
    if pages:
        for agg in by_id.values():
            agg.status = resolve_status(agg)

    criteria = list(by_id.values())
    return AggregationResult(
        criteria=criteria,
        top_issues=top_issues(criteria),
        duplicate_labels=sorted(duplicates),
        pages=list(pages),
    )
