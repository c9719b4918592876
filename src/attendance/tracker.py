"""In-memory tracker of meetings that have started and not yet ended.

The webhook thread writes and the monitor's timer threads read, so every
access goes through one lock.
"""

import threading
from datetime import datetime, timedelta, timezone

from src.attendance.logging import get_logger
from src.attendance.models import Session

logger = get_logger(__name__)


class SessionTracker:
    """Maps provider meeting id to its open Session."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, meeting_id: str) -> bool:
        with self._lock:
            return meeting_id in self._sessions

    def register(
        self,
        meeting_id: str,
        topic: str,
        start_time: datetime,
        host: str | None = None,
        *,
        now: datetime | None = None,
    ) -> Session:
        """Store an open session, replacing any previous one for the same id."""
        session = Session(
            meeting_id=meeting_id,
            topic=topic,
            start_time=start_time,
            host=host,
            registered_at=now or datetime.now(timezone.utc),
        )
        with self._lock:
            previous = self._sessions.get(meeting_id)
            self._sessions[meeting_id] = session

        if previous is not None:
            logger.info(
                "session_overwritten",
                meeting_id=meeting_id,
                previous_start=previous.start_time.isoformat(),
                start=start_time.isoformat(),
            )
        else:
            logger.info("session_registered", meeting_id=meeting_id, topic=topic)
        return session

    def resolve_and_clear(self, meeting_id: str, end_time: datetime | None = None) -> Session | None:
        """Remove and return the open session for a meeting.

        Returns:
            The session, or None when no started-event was seen (duplicate,
            late or out-of-order ended-events are expected from the provider).
        """
        with self._lock:
            session = self._sessions.pop(meeting_id, None)

        if session is None:
            logger.info(
                "session_not_found",
                meeting_id=meeting_id,
                end_time=end_time.isoformat() if end_time else None,
            )
        return session

    def find_by_topic(self, topic: str) -> Session | None:
        """Most recently started open session with this exact topic."""
        with self._lock:
            matches = [s for s in self._sessions.values() if s.topic == topic]
        if not matches:
            return None
        return max(matches, key=lambda s: s.start_time)

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def sweep_expired(self, now: datetime, ttl: timedelta) -> list[Session]:
        """Drop sessions registered longer than ttl ago.

        A started-event whose ended-event never arrives would otherwise stay
        in memory for the life of the process.
        """
        cutoff = now - ttl
        with self._lock:
            expired = [s for s in self._sessions.values() if s.registered_at < cutoff]
            for session in expired:
                del self._sessions[session.meeting_id]

        for session in expired:
            logger.warning(
                "session_expired",
                meeting_id=session.meeting_id,
                topic=session.topic,
                registered_at=session.registered_at.isoformat(),
            )
        return expired

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
