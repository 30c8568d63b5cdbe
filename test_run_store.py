"""Session model and checkpoint store."""
from __future__ import annotations

import json
import os

import pytest

from conftest import collected, evidence, findings, link
from engine import run_store
from engine.run_store import CheckpointError, SessionStore
from engine.session import AuditSession, AuditSummary, PageResult

URLS = ["https://ex.fr/", "https://ex.fr/contact", "https://ex.fr/plan"]


def _session():
    session = AuditSession.new("s1", URLS)
    session.record(PageResult.success(URLS[1], evidence(
        findings(violations=["image-alt"]),
        collected(links=[link("a.x", "Contact", "/contact")]),
    )))
    session.record(PageResult.failure(URLS[0], "net::ERR_NAME_NOT_RESOLVED"))
    return session


# ══════════════════════════════════════════════════════════════════
#  Session invariants
# ══════════════════════════════════════════════════════════════════

def test_record_moves_url_from_pending_to_completed():
    session = _session()
    assert session.completed_pages == [URLS[1], URLS[0]]
    assert session.pending_pages == [URLS[2]]
    assert set(session.completed_pages) | set(session.pending_pages) == set(URLS)
    assert set(session.results) == set(session.completed_pages)
    assert session.failed_count == 1
    assert [r.url for r in session.successful_results()] == [URLS[1]]


def test_record_rejects_urls_that_are_not_pending():
    session = _session()
    with pytest.raises(ValueError):
        session.record(PageResult.failure(URLS[1], "again"))
    with pytest.raises(ValueError):
        session.record(PageResult.failure("https://elsewhere.fr/", "boom"))


def test_duplicate_input_urls_are_collapsed():
    session = AuditSession.new("s2", [URLS[0], URLS[0], URLS[1]])
    assert session.total_pages == 2
    assert session.pending_pages == URLS[:2]


def test_page_result_needs_exactly_one_outcome():
    with pytest.raises(ValueError):
        PageResult(url=URLS[0], audited_at="2026-01-01T00:00:00+00:00")
    with pytest.raises(ValueError):
        PageResult(url=URLS[0], audited_at="2026-01-01T00:00:00+00:00",
                   evidence=evidence(findings()), error="boom")


def test_summary_counts_failures():
    summary = AuditSummary.of(_session(), cancelled=True)
    assert summary.to_dict()["totalPages"] == 3
    assert summary.completed_pages == 2
    assert summary.failed_pages == 1
    assert summary.cancelled is True


# ══════════════════════════════════════════════════════════════════
#  Store
# ══════════════════════════════════════════════════════════════════

def test_save_then_load(store):
    original = _session()
    path = store.save("s1", original)

    assert os.path.basename(path) == "audit-s1.json"
    assert not os.path.exists(path + ".tmp")
    with open(path, encoding="utf-8") as f:
        on_disk = json.load(f)
    assert on_disk["sessionId"] == "s1"
    assert on_disk["pendingPages"] == [URLS[2]]
    assert on_disk["results"][URLS[0]]["error"] == "net::ERR_NAME_NOT_RESOLVED"

    loaded = store.load("s1")
    assert loaded == original
    assert loaded.results[URLS[1]].evidence.findings.violations[0].rule_id == "image-alt"


def test_load_unknown_session_returns_none(store):
    assert store.load("nothing-here") is None
    assert store.remaining_urls("nothing-here") is None
    assert store.exists("nothing-here") is False
    store.save("nothing-here", _session())
    assert store.exists("nothing-here") is True


@pytest.mark.parametrize("bad_id", ["", "../etc/passwd", "a/b", "with space", "é", "x" * 65])
def test_unsafe_session_ids_are_rejected(store, bad_id):
    with pytest.raises(ValueError):
        store.save(bad_id, _session())


def test_corrupt_checkpoint_raises(store):
    os.makedirs(store.root, exist_ok=True)
    with open(store.path_for("bad"), "w", encoding="utf-8") as f:
        f.write('{"sessionId": "bad", "startedAt"')
    with pytest.raises(CheckpointError):
        store.load("bad")


def test_failed_write_keeps_previous_checkpoint(store, monkeypatch):
    first = AuditSession.new("s1", URLS)
    path = store.save("s1", first)
    with open(path, encoding="utf-8") as f:
        before = f.read()

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(run_store.os, "replace", broken_replace)
    with pytest.raises(CheckpointError, match="disk full"):
        store.save("s1", _session())

    with open(path, encoding="utf-8") as f:
        assert f.read() == before
    assert not os.path.exists(path + ".tmp")


def test_remaining_urls_keep_input_order(store):
    session = AuditSession.new("s3", URLS)
    session.record(PageResult.failure(URLS[1], "timeout"))
    store.save("s3", session)
    assert store.remaining_urls("s3") == [URLS[0], URLS[2]]


def test_list_sessions(store):
    assert store.list_sessions() == []
    store.save("a1", AuditSession.new("a1", URLS))
    store.save("b2", AuditSession.new("b2", URLS))
    assert sorted(store.list_sessions()) == ["a1", "b2"]
