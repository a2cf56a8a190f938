"""In-memory call log for tool executions."""

from __future__ import annotations

import json
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

DEFAULT_LOG_CAPACITY = 1000
DEFAULT_PREVIEW_LENGTH = 500


def _serialize(data: Any) -> str:
    return json.dumps(data, default=str, ensure_ascii=False)


def truncate_for_log(data: Any, max_length: int = DEFAULT_PREVIEW_LENGTH) -> Any:
    """Return ``data`` or a bounded summary of it for storage in a log entry.

    Lists keep their length and the first two items; everything else keeps a
    string preview of ``max_length`` characters.
    """

    serialized = _serialize(data)
    if len(serialized) <= max_length:
        return data

    if isinstance(data, list) and data:
        return {
            "_truncated": True,
            "_type": "array",
            "_count": len(data),
            "_sample": data[:2],
        }

    return {"_truncated": True, "_preview": serialized[:max_length] + "..."}


def exceeds_preview(data: Any, max_length: int = DEFAULT_PREVIEW_LENGTH) -> bool:
    """Return whether ``data`` would be truncated by :func:`truncate_for_log`."""

    return len(_serialize(data)) > max_length


@dataclass(frozen=True)
class LogEntry:
    """A single recorded protocol call."""

    method: str
    arguments: Any
    result: Any = None
    duration_ms: float = 0.0
    session_id: Optional[str] = None
    tool_name: Optional[str] = None
    error: Optional[str] = None
    truncated: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failed(self) -> bool:
        """Return whether the call ended with an error."""

        return self.error is not None

    def matches(self, query: str) -> bool:
        """Case-insensitive match against tool, method, error and arguments."""

        needle = query.lower()
        haystacks = [
            self.tool_name or "",
            self.method,
            self.error or "",
            _serialize(self.arguments),
        ]
        return any(needle in value.lower() for value in haystacks)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the entry using the protocol's camelCase names."""

        payload: Dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "arguments": self.arguments,
            "result": self.result,
            "durationMs": self.duration_ms,
            "truncated": self.truncated,
        }
        if self.session_id is not None:
            payload["sessionId"] = self.session_id
        if self.tool_name is not None:
            payload["toolName"] = self.tool_name
        if self.error is not None:
            payload["error"] = self.error
        return payload


class LogStore:
    """Fixed-capacity, newest-first buffer of :class:`LogEntry` records."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def add(self, entry: LogEntry) -> None:
        """Insert ``entry`` at index 0, evicting the oldest once full."""

        with self._lock:
            self._entries.appendleft(entry)

    def entries(self) -> List[LogEntry]:
        """Return a snapshot of all entries, most recent first."""

        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def search(self, query: str) -> List[LogEntry]:
        """Return entries matching ``query``; an empty query returns everything."""

        snapshot = self.entries()
        if not query:
            return snapshot
        return [entry for entry in snapshot if entry.matches(query)]

    def stats(self) -> Dict[str, int]:
        snapshot = self.entries()
        errors = sum(1 for entry in snapshot if entry.failed)
        return {
            "total": len(snapshot),
            "success": len(snapshot) - errors,
            "errors": errors,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __getitem__(self, index: int) -> LogEntry:
        with self._lock:
            return self._entries[index]
