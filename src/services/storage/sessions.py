"""
In-memory review session store.
Sessions last for the lifetime of the process; nothing is written to disk.
Sessions not touched for SESSION_TTL_MINUTES are dropped with their uploads.
"""
import time
from typing import Callable, Dict, Optional

from loguru import logger

from ..review_session import ReviewSession
from ...core.config import settings


class SessionStore:
    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._sessions: Dict[str, ReviewSession] = {}
        self._touched: Dict[str, float] = {}
        self.ttl_seconds = settings.session_ttl_minutes * 60 if ttl_seconds is None else ttl_seconds
        self._clock = clock

    def create(self) -> ReviewSession:
        """Create a new empty session"""
        self.prune()
        session = ReviewSession()
        self._sessions[session.id] = session
        self._touched[session.id] = self._clock()
        return session

    def get(self, session_id: str) -> Optional[ReviewSession]:
        self.prune()
        session = self._sessions.get(session_id)
        if session is not None:
            self._touched[session_id] = self._clock()
        return session

    def delete(self, session_id: str) -> bool:
        self._touched.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def prune(self) -> int:
        """Drop idle sessions; a TTL of 0 or less keeps everything"""
        if self.ttl_seconds <= 0:
            return 0
        cutoff = self._clock() - self.ttl_seconds
        expired = [session_id for session_id, touched in self._touched.items() if touched < cutoff]
        for session_id in expired:
            self.delete(session_id)
            logger.info("Review session expired", session_id=session_id)
        return len(expired)

    def clear(self) -> None:
        self._sessions.clear()
        self._touched.clear()


# Global instance (in production, use dependency injection)
session_store = SessionStore()
