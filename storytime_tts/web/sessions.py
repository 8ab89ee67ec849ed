"""In-memory session tracking for the web interface."""

import logging
import threading
from typing import Callable, Optional

from storytime_tts.pipeline import GenerationPipeline

logger = logging.getLogger(__name__)


class Session:
    """One uploaded story, its pipeline and the worker generating it."""

    def __init__(self, session_id: str, pipeline: GenerationPipeline, filename: str, engine_name: str):
        self.session_id = session_id
        self.pipeline = pipeline
        self.filename = filename
        self.engine_name = engine_name
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_busy(self) -> bool:
        """True while a generation worker is alive, including its start-up."""
        with self._lock:
            return self._worker is not None and self._worker.is_alive()

    def start(self, target: Callable[[], None]) -> bool:
        """Start ``target`` on a worker thread unless one is already running."""
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return False
            self._worker = threading.Thread(
                target=target, name=f"generate-{self.session_id}", daemon=True,
            )
            self._worker.start()
            return True

    def join(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            worker = self._worker
        if worker is not None:
            worker.join(timeout)


class SessionManager:
    """Thread-safe in-memory session store.

    Sessions live until they are deleted or the process exits; nothing is
    persisted.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def add(self, session: Session) -> Session:
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.pipeline.close()
            logger.info("Closed session %s", session_id)
        return session

    def close_all(self) -> None:
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.remove(session_id)
