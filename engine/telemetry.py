"""Runtime performance telemetry for the audit worker pool.

Collects page timings, checkpoint timings and concurrency figures for
one audit run.  Workers update it from several threads, so every
mutation goes through the internal lock.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, fields
from typing import Any


@dataclass
class AuditTelemetry:
    """Accumulates performance metrics throughout a single audit run."""

    workers: int = 0

    # Pages
    pages_started: int = 0
    pages_completed: int = 0
    pages_failed: int = 0
    page_total_ms: int = 0
    page_max_ms: int = 0

    # Concurrency
    in_flight: int = 0
    peak_in_flight: int = 0

    # Checkpoints
    checkpoint_count: int = 0
    checkpoint_total_ms: int = 0

    # Overall timing (in seconds)
    phase_setup_sec: float = 0.0
    phase_audit_sec: float = 0.0
    run_duration_sec: float = 0.0

    # Internal helpers (not serialized)
    _phase_starts: dict[str, float] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def start_phase(self, name: str) -> None:
        with self._lock:
            self._phase_starts[name] = time.perf_counter()

    def end_phase(self, name: str) -> None:
        with self._lock:
            start = self._phase_starts.pop(name, None)
            if start is not None:
                elapsed = round(time.perf_counter() - start, 2)
                attr = f"phase_{name}_sec"
                if hasattr(self, attr):
                    setattr(self, attr, elapsed)

    def page_started(self) -> None:
        with self._lock:
            self.pages_started += 1
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def page_finished(self, duration_ms: int, *, failed: bool) -> None:
        with self._lock:
            self.in_flight -= 1
            self.pages_completed += 1
            if failed:
                self.pages_failed += 1
            self.page_total_ms += duration_ms
            self.page_max_ms = max(self.page_max_ms, duration_ms)

    def record_checkpoint(self, duration_ms: int) -> None:
        with self._lock:
            self.checkpoint_count += 1
            self.checkpoint_total_ms += duration_ms

    @property
    def page_avg_ms(self) -> int:
        if not self.pages_completed:
            return 0
        return self.page_total_ms // self.pages_completed

    def to_dict(self) -> dict[str, Any]:
        """Serialize metrics, dropping the private helpers."""
        with self._lock:
            d = {f.name: getattr(self, f.name) for f in fields(self) if not f.name.startswith("_")}
        d["page_avg_ms"] = self.page_avg_ms
        return d

    def summary_lines(self) -> list[str]:
        """Human-readable summary for terminal output."""
        return [
            f"  Workers:          {self.workers} (peak in flight {self.peak_in_flight})",
            f"  Pages:            {self.pages_completed} done,"
            f" {self.pages_failed} failed"
            f" (avg {self.page_avg_ms}ms, max {self.page_max_ms}ms)",
            f"  Checkpoints:      {self.checkpoint_count}"
            f"  ({self.checkpoint_total_ms}ms)",
            f"  Phases:           setup={self.phase_setup_sec}s"
            f"  audit={self.phase_audit_sec}s",
            f"  Total duration:   {self.run_duration_sec}s",
        ]
