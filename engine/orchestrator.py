"""Audit controller: starts background audits and fans events out to subscribers.

Usage:
    controller = AuditController(pool, settings)
    sid = controller.start(["https://example.fr/", "https://example.fr/contact"])
    controller.subscribe(sid, lambda event: print(format_sse(event)))
    controller.wait(sid)

Cancellation has two modes, picked when the controller is built:

  - ``advisory`` (default): the controller stops forwarding page events;
    the workers drain the queue and every page is still checkpointed.
  - ``immediate``: a ``CancellationToken`` is handed to the pool and
    workers stop taking new URLs; unvisited URLs stay pending.

Either way subscribers receive the terminal ``audit_complete`` with
``cancelled: true``.  A subscriber arriving after the end is replayed
the terminal event.  Only the most recent ``keep_finished`` finished
runs are remembered.
"""
from __future__ import annotations

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Callable, Literal, Sequence

import structlog

from engine.events import AuditComplete, AuditFailed, ControllerEvent
from engine.run_store import validate_session_id
from engine.settings import AuditSettings
from engine.telemetry import AuditTelemetry
from engine.worker_pool import AuditPool, CancellationToken, effective_concurrency

logger = structlog.get_logger(__name__)

Subscriber = Callable[[ControllerEvent], None]
CancelMode = Literal["advisory", "immediate"]


class AuditRequestError(ValueError):
    """The audit request was rejected (empty, too many URLs...)."""


@dataclass
class _RunState:
    session_id: str
    token: CancellationToken | None = None
    telemetry: AuditTelemetry = field(default_factory=AuditTelemetry)
    cancelled: bool = False
    subscribers: list[Subscriber] = field(default_factory=list)
    terminal: ControllerEvent | None = None
    thread: threading.Thread | None = None


class AuditController:
    def __init__(
        self,
        pool: AuditPool,
        settings: AuditSettings | None = None,
        *,
        cancel_mode: CancelMode = "advisory",
        keep_finished: int = 100,
    ):
        if cancel_mode not in ("advisory", "immediate"):
            raise ValueError(f"Unknown cancel mode {cancel_mode!r}")
        if keep_finished < 1:
            raise ValueError("keep_finished must be at least 1")
        self.pool = pool
        self.settings = settings or AuditSettings()
        self.cancel_mode = cancel_mode
        self.keep_finished = keep_finished
        self._runs: dict[str, _RunState] = {}
        self._lock = threading.Lock()
        self._finished: deque[str] = deque()

    # ── Request validation ────────────────────────────────────────
    def validate_request(
        self, urls: Sequence[str] | None, concurrency: int | None = None,
    ) -> tuple[list[str], int]:
        """Return (deduplicated urls, effective concurrency)."""
        if isinstance(urls, str) or not urls:
            raise AuditRequestError("urls must be a non-empty list")
        if any(not isinstance(u, str) or not u.strip() for u in urls):
            raise AuditRequestError("every url must be a non-empty string")
        unique = list(dict.fromkeys(u.strip() for u in urls))
        if len(unique) > self.settings.max_pages:
            raise AuditRequestError(
                f"At most {self.settings.max_pages} urls per audit (got {len(unique)})"
            )
        return unique, effective_concurrency(concurrency, self.settings.default_concurrency)

    # ── Lifecycle ─────────────────────────────────────────────────
    def start(
        self,
        urls: Sequence[str],
        concurrency: int | None = None,
        *,
        session_id: str | None = None,
    ) -> str:
        unique, workers = self.validate_request(urls, concurrency)
        sid = validate_session_id(session_id) if session_id else uuid.uuid4().hex
        state = _RunState(
            session_id=sid,
            token=CancellationToken() if self.cancel_mode == "immediate" else None,
        )
        with self._lock:
            if sid in self._runs or self.pool.store.exists(sid):
                raise AuditRequestError(f"Session {sid} already exists")
            self._runs[sid] = state

        state.thread = threading.Thread(
            target=self._run, args=(state, unique, workers), name=f"audit-{sid}", daemon=True,
        )
        state.thread.start()
        logger.info("audit_requested", session_id=sid, pages=len(unique), workers=workers,
                    cancel_mode=self.cancel_mode)
        return sid

    def subscribe(self, session_id: str, callback: Subscriber) -> Callable[[], None]:
        """Receive this session's events; returns an unsubscribe function."""
        with self._lock:
            state = self._runs.get(session_id)
            if state is None:
                raise KeyError(f"Unknown session {session_id}")
            terminal = state.terminal
            if terminal is None:
                state.subscribers.append(callback)
        if terminal is not None:
            callback(terminal)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in state.subscribers:
                    state.subscribers.remove(callback)
        return _unsubscribe

    def cancel(self, session_id: str) -> bool:
        """Mark a running audit cancelled.  False when it is unknown or finished."""
        with self._lock:
            state = self._runs.get(session_id)
            if state is None or state.terminal is not None:
                return False
            state.cancelled = True
            if state.token is not None:
                state.token.cancel()
        logger.info("audit_cancel_requested", session_id=session_id, mode=self.cancel_mode)
        return True

    def wait(self, session_id: str, timeout: float | None = None) -> ControllerEvent | None:
        """Join the background run; returns the terminal event (None on timeout)."""
        state = self._runs.get(session_id)
        if state is None:
            raise KeyError(f"Unknown session {session_id}")
        if state.thread is not None:
            state.thread.join(timeout)
        return state.terminal

    def terminal_event(self, session_id: str) -> ControllerEvent | None:
        state = self._runs.get(session_id)
        return state.terminal if state else None

    def telemetry(self, session_id: str) -> AuditTelemetry | None:
        state = self._runs.get(session_id)
        return state.telemetry if state else None

    # ── Background run ────────────────────────────────────────────
    def _run(self, state: _RunState, urls: list[str], workers: int) -> None:
        log = logger.bind(session_id=state.session_id)
        try:
            for event in self.pool.run(
                urls, workers, state.session_id, cancel_token=state.token, telemetry=state.telemetry,
            ):
                if isinstance(event, AuditComplete):
                    if state.cancelled and not event.summary.cancelled:
                        event = replace(event, summary=replace(event.summary, cancelled=True))
                    self._finish(state, event)
                elif not state.cancelled:
                    self._publish(state, event)
        except Exception as exc:
            log.error("audit_failed", error=str(exc), exc_info=True)
            self._finish(state, AuditFailed(error=str(exc) or exc.__class__.__name__))

    def _finish(self, state: _RunState, event: ControllerEvent) -> None:
        with self._lock:
            state.terminal = event
        self._publish(state, event)
        with self._lock:
            state.subscribers.clear()
            state.token = None
            self._finished.append(state.session_id)
            while len(self._finished) > self.keep_finished:
                self._runs.pop(self._finished.popleft(), None)

    def _publish(self, state: _RunState, event: ControllerEvent) -> None:
        with self._lock:
            subscribers = list(state.subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as exc:
                logger.warning("subscriber_failed", session_id=state.session_id,
                               event_type=event.type, error=str(exc))
