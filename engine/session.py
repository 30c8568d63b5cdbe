"""Audit session state: the unit the checkpoint store persists.

A session partitions its input URLs into ``completed_pages`` (completion
order) and ``pending_pages`` (input order).  Every completed url has an
entry in ``results``.  ``record`` is the only mutation and keeps that
partition intact.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from evidence.types import PageEvidence


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PageResult:
    """Outcome of auditing one URL.  Exactly one of evidence / error is set."""
    url: str
    audited_at: str
    evidence: PageEvidence | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if (self.evidence is None) == (self.error is None):
            raise ValueError(f"PageResult for {self.url} needs exactly one of evidence / error")

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, url: str, evidence: PageEvidence) -> PageResult:
        return cls(url=url, audited_at=utc_now(), evidence=evidence)

    @classmethod
    def failure(cls, url: str, error: str) -> PageResult:
        return cls(url=url, audited_at=utc_now(), error=error or "Unknown error")

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "auditedAt": self.audited_at,
            "evidence": self.evidence.to_dict() if self.evidence is not None else None,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageResult:
        evidence = data.get("evidence")
        return cls(
            url=data["url"],
            audited_at=data["auditedAt"],
            evidence=PageEvidence.from_dict(evidence) if evidence is not None else None,
            error=data.get("error"),
        )


@dataclass
class AuditSession:
    session_id: str
    started_at: str
    total_pages: int
    completed_pages: list[str] = field(default_factory=list)
    pending_pages: list[str] = field(default_factory=list)
    results: dict[str, PageResult] = field(default_factory=dict)

    @classmethod
    def new(cls, session_id: str, urls: Iterable[str]) -> AuditSession:
        pending = list(dict.fromkeys(urls))
        return cls(
            session_id=session_id,
            started_at=utc_now(),
            total_pages=len(pending),
            pending_pages=pending,
        )

    def record(self, result: PageResult) -> None:
        """Move *result.url* from pending to completed."""
        if result.url not in self.pending_pages:
            raise ValueError(f"{result.url} is not pending in session {self.session_id}")
        self.pending_pages.remove(result.url)
        self.completed_pages.append(result.url)
        self.results[result.url] = result

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results.values() if r.failed)

    @property
    def is_finished(self) -> bool:
        return not self.pending_pages

    def successful_results(self) -> list[PageResult]:
        """Completed results without error, in completion order."""
        return [
            self.results[url] for url in self.completed_pages
            if url in self.results and not self.results[url].failed
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "startedAt": self.started_at,
            "totalPages": self.total_pages,
            "completedPages": list(self.completed_pages),
            "pendingPages": list(self.pending_pages),
            "results": {url: r.to_dict() for url, r in self.results.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditSession:
        return cls(
            session_id=data["sessionId"],
            started_at=data["startedAt"],
            total_pages=int(data["totalPages"]),
            completed_pages=list(data.get("completedPages") or ()),
            pending_pages=list(data.get("pendingPages") or ()),
            results={
                url: PageResult.from_dict(r)
                for url, r in (data.get("results") or {}).items()
            },
        )


@dataclass(frozen=True)
class AuditSummary:
    total_pages: int
    completed_pages: int
    failed_pages: int
    started_at: str
    finished_at: str
    cancelled: bool = False

    @classmethod
    def of(cls, session: AuditSession, *, cancelled: bool = False) -> AuditSummary:
        return cls(
            total_pages=session.total_pages,
            completed_pages=len(session.completed_pages),
            failed_pages=session.failed_count,
            started_at=session.started_at,
            finished_at=utc_now(),
            cancelled=cancelled,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPages": self.total_pages,
            "completedPages": self.completed_pages,
            "failedPages": self.failed_pages,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "cancelled": self.cancelled,
        }
