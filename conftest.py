"""Shared fixtures and fake collaborators (no browser required)."""
from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from control_packs.loader import load_catalog, reset_catalog_cache
from engine.run_store import SessionStore
from engine.worker_pool import AuditPool
from evidence.types import (
    CollectedEvidence,
    HeadingEvidence,
    HeadingFlag,
    HeadingTree,
    ImageEvidence,
    LinkEvidence,
    PageEvidence,
    RuleFinding,
    RuleFindings,
)


# ══════════════════════════════════════════════════════════════════
#  Fake browser driver
# ══════════════════════════════════════════════════════════════════

def _check_owner(owner: int) -> None:
    # Same rule as Playwright's sync objects: usable only from the creating thread.
    if threading.get_ident() != owner:
        raise RuntimeError("cannot switch to a different thread")


class FakePage:
    def __init__(self, driver: FakeDriver, owner: int):
        self.driver = driver
        self.owner = owner
        self.url: str | None = None
        self.closed = False

    def goto(self, url: str, *, wait_until: str = "load", timeout: float | None = None) -> None:
        _check_owner(self.owner)
        self.url = url
        driver = self.driver
        with driver.lock:
            driver.active += 1
            driver.peak = max(driver.peak, driver.active)
        try:
            if driver.gate is not None:
                driver.gate.wait(5)
            behaviour = driver.behaviours.get(url)
            if isinstance(behaviour, Exception):
                raise behaviour
            if behaviour == "hang":
                wait_s = timeout / 1000 + 0.05 if timeout else 5
                if not driver.release.wait(wait_s):
                    raise TimeoutError(f"Timeout {timeout}ms exceeded.")
            else:
                time.sleep(driver.delay)
        finally:
            with driver.lock:
                driver.active -= 1
                driver.visited.append(url)

    def close(self) -> None:
        _check_owner(self.owner)
        self.closed = True


class FakeContext:
    def __init__(self, driver: FakeDriver):
        self.driver = driver
        self.owner = threading.get_ident()
        self.thread_name = threading.current_thread().name
        self.closed = False
        self.pages: list[FakePage] = []

    def new_page(self) -> FakePage:
        _check_owner(self.owner)
        page = FakePage(self.driver, self.owner)
        self.pages.append(page)
        return page

    def close(self) -> None:
        _check_owner(self.owner)
        self.closed = True


class FakeDriver:
    """Per-url behaviours: an Exception to raise, ``"hang"``, or nothing."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.behaviours: dict[str, Any] = {}
        self.contexts: list[FakeContext] = []
        self.visited: list[str] = []
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0
        self.gate: threading.Event | None = None
        self.release = threading.Event()
        self.context_error: Exception | None = None

    def new_context(self) -> FakeContext:
        if self.context_error is not None:
            raise self.context_error
        ctx = FakeContext(self)
        with self.lock:
            self.contexts.append(ctx)
        return ctx


class FakeExtractor:
    def __init__(self):
        self.findings: dict[str, RuleFindings] = {}
        self.collected: dict[str, CollectedEvidence] = {}
        self.collect_errors: dict[str, Exception] = {}
        self.collect_delays: dict[str, float] = {}

    def analyze_page(self, page: FakePage) -> RuleFindings:
        _check_owner(page.owner)
        return self.findings.get(page.url, RuleFindings())

    def collect_evidence(self, page: FakePage) -> CollectedEvidence:
        _check_owner(page.owner)
        if page.url in self.collect_delays:
            time.sleep(self.collect_delays[page.url])
        if page.url in self.collect_errors:
            raise self.collect_errors[page.url]
        return self.collected.get(page.url, CollectedEvidence())


# ══════════════════════════════════════════════════════════════════
#  Evidence builders
# ══════════════════════════════════════════════════════════════════

def finding(rule_id: str, severity: str = "serious") -> RuleFinding:
    return RuleFinding(rule_id=rule_id, severity=severity, description=f"{rule_id} check",
                       help_url=f"https://dequeuniversity.com/rules/axe/4.9/{rule_id}")


def findings(violations=(), passes=(), incomplete=()) -> RuleFindings:
    return RuleFindings(
        violations=tuple(finding(r) for r in violations),
        passes=tuple(finding(r) for r in passes),
        incomplete=tuple(finding(r) for r in incomplete),
    )


def link(selector: str, label: str | None, href: str | None, *flags: str) -> LinkEvidence:
    return LinkEvidence(selector=selector, accessible_label=label, href=href, flags=tuple(flags))


def image(selector: str, *flags: str) -> ImageEvidence:
    return ImageEvidence(selector=selector, src=f"/img/{selector}.png", flags=tuple(flags))


def heading(selector: str, level: int, *flags: str | HeadingFlag) -> HeadingEvidence:
    return HeadingEvidence(
        level=level,
        text=selector,
        selector=selector,
        flags=tuple(f if isinstance(f, HeadingFlag) else HeadingFlag(f) for f in flags),
    )


def collected(images=(), links=(), headings=(), page_flags=(), title="Accueil - Test") -> CollectedEvidence:
    return CollectedEvidence(
        images=tuple(images),
        links=tuple(links),
        headings=HeadingTree(document_title=title, headings=tuple(headings), flags=tuple(page_flags)),
    )


def evidence(rule_findings: RuleFindings | None = None, collected_evidence: CollectedEvidence | None = None) -> PageEvidence:
    return PageEvidence(findings=rule_findings, collected=collected_evidence)


# ══════════════════════════════════════════════════════════════════
#  Fixtures
# ══════════════════════════════════════════════════════════════════

@pytest.fixture
def catalog():
    reset_catalog_cache()
    yield load_catalog()
    reset_catalog_cache()


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "sessions")


@pytest.fixture
def driver():
    d = FakeDriver()
    yield d
    # Unblock anything a test left hanging.
    d.release.set()
    if d.gate is not None:
        d.gate.set()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def pool(driver, extractor, store):
    return AuditPool(driver, extractor, store, page_timeout_seconds=2.0)
