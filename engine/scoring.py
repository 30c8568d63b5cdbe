# engine/scoring.py
from __future__ import annotations
from typing import Any, Dict, List

from schemas.domain import AggregatedCriterion, AuditReportSummary, CriterionStatus, TopIssue
from schemas.taxonomy import TOP_ISSUES_LIMIT

# Final statuses that count as "evaluated by the machine"
AUTO_STATUSES = {CriterionStatus.VIOLATION, CriterionStatus.PASS, CriterionStatus.INCOMPLETE}


def status_counts(criteria: List[AggregatedCriterion]) -> Dict[str, int]:
    counts = {s.value: 0 for s in CriterionStatus}
    for c in criteria:
        counts[c.status.value] += 1
    return counts


def top_issues(criteria: List[AggregatedCriterion], limit: int = TOP_ISSUES_LIMIT) -> List[TopIssue]:
    """Criteria with at least one violating page, worst first.

    sorted() is stable, so ties keep catalog order.
    """
    ranked = sorted(
        (c for c in criteria if c.pages_violating),
        key=lambda c: len(c.pages_violating),
        reverse=True,
    )
    return [
        TopIssue(criterion_id=c.criterion_id, title=c.title, pages_affected=len(c.pages_violating))
        for c in ranked[:limit]
    ]


def summarize(result: Any) -> AuditReportSummary:
    """Summary counts for an AggregationResult."""
    criteria: List[AggregatedCriterion] = result.criteria
    counts = status_counts(criteria)
    return {
        "totalCriteria": len(criteria),
        "automated": sum(1 for c in criteria if c.status in AUTO_STATUSES),
        "violations": counts[CriterionStatus.VIOLATION.value],
        "passes": counts[CriterionStatus.PASS.value],
        "manual": counts[CriterionStatus.MANUAL.value],
        "incomplete": counts[CriterionStatus.INCOMPLETE.value],
        "topIssues": [t.to_dict() for t in result.top_issues],
        "criteria": [c.to_dict() for c in criteria],
    }
