"""Progress events streamed by the audit worker pool.

Each event has a ``type`` discriminator and a JSON-serialisable payload
(``to_dict`` includes ``type``).  ``format_sse`` renders one event as a
Server-Sent Events message.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from engine.session import AuditSummary, PageResult


@dataclass(frozen=True)
class PageStart:
    type: ClassVar[str] = "page_start"
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "url": self.url}


@dataclass(frozen=True)
class PageComplete:
    type: ClassVar[str] = "page_complete"
    url: str
    result: PageResult

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "url": self.url, "result": self.result.to_dict()}


@dataclass(frozen=True)
class PageError:
    type: ClassVar[str] = "page_error"
    url: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "url": self.url, "error": self.error}


@dataclass(frozen=True)
class AuditComplete:
    type: ClassVar[str] = "audit_complete"
    summary: AuditSummary

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "summary": self.summary.to_dict()}


@dataclass(frozen=True)
class AuditFailed:
    """Published by the controller when a run dies (e.g. checkpoint failure)."""
    type: ClassVar[str] = "audit_error"
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "error": self.error}


ProgressEvent = Union[PageStart, PageComplete, PageError, AuditComplete]
ControllerEvent = Union[PageStart, PageComplete, PageError, AuditComplete, AuditFailed]

TERMINAL_TYPES = frozenset({AuditComplete.type, AuditFailed.type})


def page_event(result: PageResult) -> PageComplete | PageError:
    if result.error is not None:
        return PageError(url=result.url, error=result.error)
    return PageComplete(url=result.url, result=result)


def format_sse(event: ControllerEvent) -> str:
    """``event: <type>\\ndata: <json>\\n\\n``; one event per message."""
    data = json.dumps(event.to_dict(), ensure_ascii=False, separators=(",", ":"))
    return f"event: {event.type}\ndata: {data}\n\n"
