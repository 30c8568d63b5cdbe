"""Audit worker pool: drives page audits across a bounded set of workers.

Workers never share a browsing context.  Each worker thread creates its
own long-lived context and makes every browser call for it, so drivers
with thread-bound objects (the Playwright sync API) work unchanged.
Workers pull URLs from one shared FIFO queue and push progress events
onto one event channel.  The consumer iterates ``AuditPool.run`` and
sees, per URL, ``page_start`` followed by ``page_complete`` or
``page_error``, and finally exactly one ``audit_complete``.

Every finished page is recorded into the session and checkpointed
*before* its completion event is emitted, so anything an observer has
seen is already on disk.
"""
from __future__ import annotations

import queue
import threading
import time
from typing import Iterator, Sequence

import structlog

from engine.events import AuditComplete, PageStart, ProgressEvent, page_event
from engine.run_store import CheckpointError, SessionStore
from engine.session import AuditSession, AuditSummary, PageResult
from engine.telemetry import AuditTelemetry
from evidence.provider import BrowserDriver, EvidenceExtractor, PageHandle, WorkerContext
from evidence.types import PageEvidence

logger = structlog.get_logger(__name__)

MAX_CONCURRENCY = 3
DEFAULT_PAGE_TIMEOUT_SECONDS = 30.0

# Put on the event channel by each worker as it exits.
_WORKER_DONE = object()


def effective_concurrency(requested: int | None, default: int = 2) -> int:
    """Clamp a requested worker count to ``[1, MAX_CONCURRENCY]``."""
    if requested is None:
        requested = default
    return max(1, min(int(requested), MAX_CONCURRENCY))


class PageTimeoutError(Exception):
    """A page audit exceeded its deadline."""


class SessionExistsError(ValueError):
    """A checkpoint already exists for the requested session id."""


class CancellationToken:
    """Stops workers from taking new URLs once set (immediate cancellation)."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


# ══════════════════════════════════════════════════════════════════
#  AuditPool
# ══════════════════════════════════════════════════════════════════

class AuditPool:
    """
    Run page audits with bounded parallelism and per-page checkpoints.
    One pool can serve many runs, concurrently too; each ``run`` call
    records into its own telemetry.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        extractor: EvidenceExtractor,
        store: SessionStore,
        *,
        page_timeout_seconds: float = DEFAULT_PAGE_TIMEOUT_SECONDS,
        default_concurrency: int = 2,
    ):
        if page_timeout_seconds <= 0:
            raise ValueError("page_timeout_seconds must be positive")
        self.driver = driver
        self.extractor = extractor
        self.store = store
        self.page_timeout_seconds = page_timeout_seconds
        self.default_concurrency = default_concurrency
        # Telemetry of the most recently started run.
        self.telemetry = AuditTelemetry()

    @classmethod
    def from_settings(cls, driver: BrowserDriver, extractor: EvidenceExtractor, settings) -> AuditPool:
        return cls(
            driver,
            extractor,
            SessionStore(settings.sessions_dir),
            page_timeout_seconds=settings.page_timeout_seconds,
            default_concurrency=settings.default_concurrency,
        )

    # ── Public API ────────────────────────────────────────────────
    def run(
        self,
        urls: Sequence[str],
        concurrency: int | None,
        session_id: str,
        cancel_token: CancellationToken | None = None,
        telemetry: AuditTelemetry | None = None,
    ) -> Iterator[ProgressEvent]:
        """Audit *urls* and yield progress events; ``audit_complete`` is last.

        Raises ``SessionExistsError`` when *session_id* already has a
        checkpoint, and ``CheckpointError`` (after all workers have
        exited) when a checkpoint could not be written.  A worker whose
        browsing context cannot be created stops the run the same way.
        """
        if self.store.exists(session_id):
            raise SessionExistsError(f"Session {session_id} already has a checkpoint")

        workers = effective_concurrency(concurrency, self.default_concurrency)
        telemetry = telemetry if telemetry is not None else AuditTelemetry()
        telemetry.workers = workers
        self.telemetry = telemetry
        log = logger.bind(session_id=session_id)
        run_started = time.perf_counter()

        telemetry.start_phase("setup")
        session = AuditSession.new(session_id, urls)
        self.store.save(session_id, session)
        telemetry.end_phase("setup")

        url_queue: queue.Queue[str] = queue.Queue()
        for url in session.pending_pages:
            url_queue.put(url)

        channel: queue.Queue = queue.Queue()
        checkpoint_lock = threading.Lock()
        halt = threading.Event()
        failures: list[Exception] = []

        log.info("audit_started", pages=session.total_pages, workers=workers)
        telemetry.start_phase("audit")

        def _worker() -> None:
            ctx: WorkerContext | None = None
            try:
                try:
                    ctx = self.driver.new_context()
                except Exception as exc:
                    log.error("context_failed", error=_describe(exc))
                    failures.append(exc)
                    halt.set()
                    return
                while not halt.is_set():
                    if cancel_token is not None and cancel_token.cancelled:
                        break
                    try:
                        url = url_queue.get_nowait()
                    except queue.Empty:
                        break
                    channel.put(PageStart(url=url))
                    result = self._audit_url(ctx, url, telemetry, log)
                    try:
                        self._checkpoint(session, result, checkpoint_lock, telemetry, log)
                    except CheckpointError as exc:
                        failures.append(exc)
                        halt.set()
                        break
                    channel.put(page_event(result))
            finally:
                if ctx is not None:
                    self._close_quietly(ctx, log, "context")
                channel.put(_WORKER_DONE)

        threads = [
            threading.Thread(target=_worker, name=f"audit-worker-{i}", daemon=True)
            for i in range(workers)
        ]
        for t in threads:
            t.start()

        finished = 0
        while finished < len(threads):
            item = channel.get()
            if item is _WORKER_DONE:
                finished += 1
                continue
            yield item

        for t in threads:
            t.join()
        telemetry.end_phase("audit")
        telemetry.run_duration_sec = round(time.perf_counter() - run_started, 2)

        if failures:
            log.error("audit_aborted", reason=failures[0].__class__.__name__, error=str(failures[0]))
            raise failures[0]

        cancelled = cancel_token is not None and cancel_token.cancelled
        summary = AuditSummary.of(session, cancelled=cancelled)
        log.info(
            "audit_finished",
            completed=summary.completed_pages,
            failed=summary.failed_pages,
            cancelled=cancelled,
            duration_sec=telemetry.run_duration_sec,
        )
        yield AuditComplete(summary=summary)

    # ── Per-page work (runs on the worker thread owning ctx) ──────
    def _audit_url(self, ctx: WorkerContext, url: str, telemetry: AuditTelemetry, log) -> PageResult:
        """Navigate + extract one URL.  Never raises: failures become data."""
        telemetry.page_started()
        started = time.perf_counter()
        result: PageResult
        page: PageHandle | None = None
        try:
            page = ctx.new_page()
            evidence = self._extract_with_deadline(page, url, started)
            result = PageResult.success(url, evidence)
        except Exception as exc:
            result = PageResult.failure(url, _describe(exc))
        finally:
            if page is not None:
                self._close_quietly(page, log, "page")

        duration_ms = int((time.perf_counter() - started) * 1000)
        telemetry.page_finished(duration_ms, failed=result.failed)
        if result.failed:
            log.warning("page_failed", url=url, error=result.error, duration_ms=duration_ms)
        else:
            log.info("page_audited", url=url, duration_ms=duration_ms)
        return result

    def _extract_with_deadline(self, page: PageHandle, url: str, started: float) -> PageEvidence:
        """Navigate and extract within the page timeout.

        Navigation is bounded by the driver's own ``timeout``.  Any
        failure past the deadline, or extraction that finishes past it,
        is reported as a timeout.
        """
        deadline = started + self.page_timeout_seconds
        try:
            page.goto(url, wait_until="networkidle", timeout=int(self.page_timeout_seconds * 1000))
            findings = self.extractor.analyze_page(page)
            collected = self.extractor.collect_evidence(page)
        except Exception as exc:
            if time.perf_counter() >= deadline:
                raise self._timed_out(url) from exc
            raise
        if time.perf_counter() > deadline:
            raise self._timed_out(url)
        return PageEvidence(findings=findings, collected=collected)

    def _timed_out(self, url: str) -> PageTimeoutError:
        return PageTimeoutError(f"Page audit timed out after {self.page_timeout_seconds:g}s: {url}")

    def _checkpoint(
        self,
        session: AuditSession,
        result: PageResult,
        lock: threading.Lock,
        telemetry: AuditTelemetry,
        log,
    ) -> None:
        with lock:
            session.record(result)
            started = time.perf_counter()
            self.store.save(session.session_id, session)
            ms = int((time.perf_counter() - started) * 1000)
        telemetry.record_checkpoint(ms)
        log.debug("checkpoint_written", url=result.url, duration_ms=ms,
                  completed=len(session.completed_pages), pending=len(session.pending_pages))

    @staticmethod
    def _close_quietly(resource, log, kind: str) -> None:
        try:
            resource.close()
        except Exception as exc:
            log.warning(f"{kind}_close_failed", error=_describe(exc))
