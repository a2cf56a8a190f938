"""Session bookkeeping for MCP clients."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 3600.0
DEFAULT_SWEEP_INTERVAL = 60.0


@dataclass
class Session:
    """Server-side handle created by ``initialize``."""

    id: str
    created_at: float
    last_access_at: float


class SessionStore:
    """In-memory map of session id to :class:`Session`.

    Validity is purely "present and not yet swept"; nothing is persisted.
    """

    def __init__(
        self,
        *,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _generate_id() -> str:
        return f"session-{uuid.uuid4().hex}"

    def create(self) -> str:
        """Register a new session and return its id."""

        now = self._clock()
        session_id = self._generate_id()
        with self._lock:
            self._sessions[session_id] = Session(session_id, now, now)
        logger.debug("Created session %s", session_id)
        return session_id

    def touch(self, session_id: Optional[str]) -> bool:
        """Refresh ``session_id`` and report whether it exists."""

        if not session_id:
            return False
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.last_access_at = self._clock()
        return True

    def terminate(self, session_id: Optional[str]) -> bool:
        """Forget ``session_id``; calling it for an unknown id is a no-op."""

        if not session_id:
            return False
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug("Terminated session %s", session_id)
        return removed

    def sweep(self, now: Optional[float] = None) -> int:
        """Evict sessions idle for longer than :attr:`idle_timeout`."""

        current = self._clock() if now is None else now
        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if current - session.last_access_at > self.idle_timeout
            ]
            for session_id in expired:
                del self._sessions[session_id]
        if expired:
            logger.info("Expired %d idle session(s)", len(expired))
        return len(expired)

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class SessionSweeper:
    """Background thread that calls :meth:`SessionStore.sweep` periodically."""

    def __init__(self, store: SessionStore, interval: float = DEFAULT_SWEEP_INTERVAL):
        self.store = store
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="taskgate-session-sweeper", daemon=True
        )
        self._thread.start()
        logger.debug("Session sweeper started (interval=%ss)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None
        logger.debug("Session sweeper stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.store.sweep()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Session sweep failed")
