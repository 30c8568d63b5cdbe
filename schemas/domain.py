"""Core domain types: shared contracts used across the entire audit system.

These are the canonical shapes that cross layer boundaries.
Internal layers (evidence, workers) may use richer dataclasses,
but everything that leaves the evaluator or the aggregator conforms to
these contracts.  JSON output uses camelCase keys; Python attributes stay
snake_case.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict

from evidence.types import RuleFinding


# ── Status enums ──────────────────────────────────────────────────
class Strategy(str, Enum):
    ANY_VIOLATION = "ANY_VIOLATION"
    ALL_PASS = "ALL_PASS"
    MANUAL_ONLY = "MANUAL_ONLY"


class CriterionStatus(str, Enum):
    VIOLATION = "violation"
    PASS = "pass"
    MANUAL = "manual"
    INCOMPLETE = "incomplete"


# ── Per-page classification (evaluator output) ────────────────────
@dataclass(frozen=True)
class EvidenceElement:
    """An element whose flags matched a criterion's flag set."""
    selector: str
    flags: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"selector": self.selector, "flags": list(self.flags)}


@dataclass(frozen=True)
class PageClassification:
    """Verdict for one criterion on one page.  No AI, no heuristics."""
    criterion_id: str
    title: str
    theme: str
    status: CriterionStatus
    violations: tuple[RuleFinding, ...] = ()
    incompletes: tuple[RuleFinding, ...] = ()
    elements: tuple[EvidenceElement, ...] = ()
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "rgaaId": self.criterion_id,
            "title": self.title,
            "theme": self.theme,
            "status": self.status.value,
            "violations": [v.to_dict() for v in self.violations],
            "incompletes": [i.to_dict() for i in self.incompletes],
            "elements": [e.to_dict() for e in self.elements],
            "notes": self.notes,
        }


@dataclass(frozen=True)
class PageAssessment:
    """Every catalog criterion classified for one page, in catalog order."""
    url: str
    classifications: tuple[PageClassification, ...]

    def classification_for(self, criterion_id: str) -> PageClassification | None:
        for c in self.classifications:
            if c.criterion_id == criterion_id:
                return c
        return None

    def to_dict(self) -> PageReport:
        return {"url": self.url, "criteria": [c.to_dict() for c in self.classifications]}


# ── Cross-page result (aggregator output) ─────────────────────────
@dataclass
class AggregatedCriterion:
    """One criterion folded across every audited page."""
    criterion_id: str
    title: str
    theme: str
    status: CriterionStatus = CriterionStatus.PASS
    pages_violating: list[str] = field(default_factory=list)
    pages_pass: list[str] = field(default_factory=list)
    pages_manual: list[str] = field(default_factory=list)
    pages_incomplete: list[str] = field(default_factory=list)

    @property
    def pages_seen(self) -> int:
        return (len(self.pages_violating) + len(self.pages_pass)
                + len(self.pages_manual) + len(self.pages_incomplete))

    def to_dict(self) -> CriterionSummary:
        return {
            "rgaaId": self.criterion_id,
            "title": self.title,
            "theme": self.theme,
            "status": self.status.value,
            "pagesViolating": list(self.pages_violating),
            "pagesPass": list(self.pages_pass),
            "pagesManual": list(self.pages_manual),
            "pagesIncomplete": list(self.pages_incomplete),
        }


@dataclass(frozen=True)
class TopIssue:
    criterion_id: str
    title: str
    pages_affected: int

    def to_dict(self) -> TopIssueDict:
        return {"rgaaId": self.criterion_id, "title": self.title, "pagesAffected": self.pages_affected}


# ── Report contracts (JSON shapes handed to renderers) ────────────
class CriterionSummary(TypedDict):
    rgaaId: str
    title: str
    theme: str
    status: str
    pagesViolating: List[str]
    pagesPass: List[str]
    pagesManual: List[str]
    pagesIncomplete: List[str]


class TopIssueDict(TypedDict):
    rgaaId: str
    title: str
    pagesAffected: int


class AuditReportSummary(TypedDict):
    """Counts over the aggregated criteria.

    ``automated`` counts criteria whose final status is anything other
    than manual.
    """
    totalCriteria: int
    automated: int
    violations: int
    passes: int
    manual: int
    incomplete: int
    topIssues: List[TopIssueDict]
    criteria: List[CriterionSummary]


class UncoveredThemeDict(TypedDict):
    id: str
    name: str
    manualChecklist: List[str]


class ReportMetadata(TypedDict):
    url: str
    date: str
    version: str
    pagesAudited: int
    coveredThemes: List[str]
    totalRgaaCriteria: int
    coveredCriteria: int


class PageReport(TypedDict):
    """Per-page classifications, duplicate-label flags included."""
    url: str
    criteria: List[Dict[str, Any]]


class Report(TypedDict):
    """Final report consumed by the presentation layer."""
    metadata: ReportMetadata
    limitBanner: str
    overlaysDetected: List[str]
    summary: AuditReportSummary
    uncoveredThemes: List[UncoveredThemeDict]
    duplicateLabels: List[str]
    pages: List[PageReport]


class ReportConfig(TypedDict, total=False):
    url: str
    date: str
    pagesAudited: int
    version: Optional[str]
