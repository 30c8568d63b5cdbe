"""Session checkpoint store: one JSON file per audit session.

Files live at ``<root>/audit-<session_id>.json``.  Writes go to a
``.tmp`` sibling, are fsynced, then atomically renamed over the previous
checkpoint, so a crash mid-write leaves the last good checkpoint intact.
"""
from __future__ import annotations

import contextlib
import json
import os
import re

import structlog

from engine.session import AuditSession

logger = structlog.get_logger(__name__)

_SESSION_ID_RX = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class CheckpointError(Exception):
    """A session checkpoint could not be written or read back."""


def validate_session_id(session_id: str) -> str:
    if not isinstance(session_id, str) or not _SESSION_ID_RX.match(session_id):
        raise ValueError(
            f"Invalid session id {session_id!r}: use 1-64 characters from [A-Za-z0-9_-]"
        )
    return session_id


class SessionStore:
    def __init__(self, root: str | os.PathLike[str]):
        self.root = os.path.expanduser(os.fspath(root))

    def path_for(self, session_id: str) -> str:
        validate_session_id(session_id)
        return os.path.join(self.root, f"audit-{session_id}.json")

    def exists(self, session_id: str) -> bool:
        return os.path.exists(self.path_for(session_id))

    def save(self, session_id: str, session: AuditSession) -> str:
        path = self.path_for(session_id)
        tmp = f"{path}.tmp"
        try:
            os.makedirs(self.root, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(session.to_dict(), f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            with contextlib.suppress(OSError):
                os.remove(tmp)
            logger.error("checkpoint_write_failed", session_id=session_id, path=path, error=str(exc))
            raise CheckpointError(f"Could not write checkpoint {path}: {exc}") from exc
        return path

    def load(self, session_id: str) -> AuditSession | None:
        path = self.path_for(session_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return AuditSession.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise CheckpointError(f"Corrupt or unreadable checkpoint {path}: {exc}") from exc

    def remaining_urls(self, session_id: str) -> list[str] | None:
        """Pending URLs of a stored session in input order (None if unknown)."""
        session = self.load(session_id)
        if session is None:
            return None
        return list(session.pending_pages)

    def list_sessions(self) -> list[str]:
        """Stored session ids, most recently written last."""
        if not os.path.isdir(self.root):
            return []
        entries = []
        for name in os.listdir(self.root):
            if name.startswith("audit-") and name.endswith(".json"):
                full = os.path.join(self.root, name)
                entries.append((os.path.getmtime(full), name[len("audit-"):-len(".json")]))
        return [sid for _, sid in sorted(entries)]
