"""Collaborator protocols for the page-audit workers.

The engine never drives a browser or runs a rule engine itself.  It talks
to these protocols, which follow the shape of the Playwright sync API.

Threading contract: ``BrowserDriver.new_context`` is called once per
worker, from that worker's thread, and every call on the resulting
context, its pages and the extractor for those pages happens on that
same thread.  Only ``new_context`` itself may be called from several
worker threads at once, so a driver must make that call safe (with the
Playwright sync API, give each worker its own ``sync_playwright()``
instance and browser).
"""
from __future__ import annotations

from typing import Any, Protocol

from evidence.types import CollectedEvidence, RuleFindings


class PageHandle(Protocol):
    def goto(self, url: str, *, wait_until: str = ..., timeout: float | None = ...) -> Any: ...

    def close(self) -> None: ...


class WorkerContext(Protocol):
    """Long-lived, isolated browsing context owned by one worker."""

    def new_page(self) -> PageHandle: ...

    def close(self) -> None: ...


class BrowserDriver(Protocol):
    def new_context(self) -> WorkerContext: ...


class EvidenceExtractor(Protocol):
    """Extracts evidence from a page that has finished navigating.

    ``analyze_page`` never raises: a rule engine failure comes back as
    ``RuleFindings(error=...)``.  ``collect_evidence`` may raise; the
    worker turns that into a failed page.
    """

    def analyze_page(self, page: PageHandle) -> RuleFindings: ...

    def collect_evidence(self, page: PageHandle) -> CollectedEvidence: ...
