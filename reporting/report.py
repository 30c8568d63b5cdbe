# reporting/report.py: Assemble the audit report handed to renderers.
"""Build the report object from an aggregation summary or a stored session.

Rendering (HTML, UI) happens elsewhere; this module only produces the
JSON-ready ``Report`` dict.
"""
from __future__ import annotations

from typing import Any, Sequence

import structlog

from control_packs.loader import Catalog
from engine.aggregation import aggregate
from engine.scoring import summarize
from engine.session import AuditSession
from evaluators.registry import evaluate_page
from schemas.domain import AuditReportSummary, PageAssessment, Report, ReportConfig
from schemas.taxonomy import limit_banner

logger = structlog.get_logger(__name__)

DEFAULT_REPORT_VERSION = "0.1.0"


def build_report(
    summary: AuditReportSummary,
    config: ReportConfig,
    catalog: Catalog,
    *,
    pages: Sequence[PageAssessment] = (),
    duplicate_labels: Sequence[str] = (),
) -> Report:
    """Wrap a summary with catalog metadata, the limit banner and uncovered themes.

    *pages* are the per-page classifications after duplicate-label
    detection; renderers use them for the per-page annexes.
    """
    covered = catalog.covered_count
    return {
        "metadata": {
            "url": config.get("url", ""),
            "date": config.get("date", ""),
            "version": config.get("version") or DEFAULT_REPORT_VERSION,
            "pagesAudited": int(config.get("pagesAudited", 0)),
            "coveredThemes": list(catalog.covered_themes),
            "totalRgaaCriteria": catalog.total_criteria,
            "coveredCriteria": covered,
        },
        "limitBanner": limit_banner(covered, catalog.total_criteria),
        # Overlay detection belongs to the presentation layer.
        "overlaysDetected": [],
        "summary": summary,
        "uncoveredThemes": [t.to_dict() for t in catalog.uncovered_themes],
        "duplicateLabels": list(duplicate_labels),
        "pages": [p.to_dict() for p in pages],
    }


def report_from_session(
    session: AuditSession,
    catalog: Catalog,
    *,
    version: str | None = None,
) -> Report:
    """Evaluate, aggregate and report every successful page of *session*.

    Failed pages are left out of the evaluation but still count as
    audited.  The report url is the first completed page, its date the
    session start.
    """
    results = session.successful_results()
    assessments = [evaluate_page(catalog, r.url, r.evidence) for r in results]
    raw_evidence: dict[str, Any] = {
        r.url: r.evidence.collected for r in results if r.evidence is not None
    }
    aggregation = aggregate(catalog, assessments, raw_evidence)
    summary = summarize(aggregation)

    logger.info(
        "report_built",
        session_id=session.session_id,
        pages=len(results),
        failed=session.failed_count,
        violations=summary["violations"],
    )
    return build_report(
        summary,
        {
            "url": session.completed_pages[0] if session.completed_pages else "",
            "date": session.started_at,
            "pagesAudited": len(session.completed_pages),
            "version": version or DEFAULT_REPORT_VERSION,
        },
        catalog,
        pages=aggregation.pages,
        duplicate_labels=aggregation.duplicate_labels,
    )
