"""
Session Store - keyed storage of per-user conversation state with TTL expiry.

Expiry is a pure predicate over last_interaction_at, evaluated lazily on
every read and by the periodic sweep, so both always agree.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

import structlog

from civic_assistant.models import Session

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_TTL = timedelta(minutes=30)


def is_expired(session: Session, now: datetime, ttl: timedelta = DEFAULT_SESSION_TTL) -> bool:
    """A session expires once more than ttl has elapsed since its last interaction."""
    return now - session.last_interaction_at > ttl


class SessionStore(ABC):
    """Abstract session store contract."""

    def __init__(self, ttl: timedelta = DEFAULT_SESSION_TTL) -> None:
        self.ttl = ttl

    @abstractmethod
    async def get(self, user_id: str, now: datetime) -> Session | None:
        """Return the live session for user_id, or None if absent or expired."""

    @abstractmethod
    async def put(self, user_id: str, session: Session) -> None:
        """Store a session, overwriting any existing entry."""

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Remove a session. Returns True if one existed."""

    @abstractmethod
    async def expired_user_ids(self, now: datetime) -> list[str]:
        """List users whose stored session has expired as of now."""

    @abstractmethod
    async def evict_if_expired(self, user_id: str, now: datetime) -> bool:
        """Remove the user's session only if it is still expired. Returns True if removed."""

    async def sweep_expired(self, now: datetime) -> int:
        """Physically remove all expired sessions, returning the count removed."""
        removed = 0
        for user_id in await self.expired_user_ids(now):
            if await self.evict_if_expired(user_id, now):
                removed += 1

        if removed:
            logger.info("sessions_swept", removed=removed)
        return removed

    async def ping(self) -> bool:
        """Check that the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release any held resources."""

    def _check_key(self, user_id: str, session: Session) -> None:
        if session.user_id != user_id:
            raise ValueError(f"Session for '{session.user_id}' cannot be stored under '{user_id}'")


class InMemorySessionStore(SessionStore):
    """
    In-process session store.

    Suitable for a single instance; use RedisSessionStore when several
    instances share sessions.
    """

    def __init__(self, ttl: timedelta = DEFAULT_SESSION_TTL) -> None:
        super().__init__(ttl)
        self._sessions: dict[str, Session] = {}

    async def get(self, user_id: str, now: datetime) -> Session | None:
        session = self._sessions.get(user_id)
        if session is None or is_expired(session, now, self.ttl):
            return None
        return session

    async def put(self, user_id: str, session: Session) -> None:
        self._check_key(user_id, session)
        self._sessions[user_id] = session

    async def delete(self, user_id: str) -> bool:
        return self._sessions.pop(user_id, None) is not None

    async def expired_user_ids(self, now: datetime) -> list[str]:
        return [
            user_id for user_id, session in self._sessions.items()
            if is_expired(session, now, self.ttl)
        ]

    async def evict_if_expired(self, user_id: str, now: datetime) -> bool:
        session = self._sessions.get(user_id)
        if session is None or not is_expired(session, now, self.ttl):
            return False
        del self._sessions[user_id]
        return True

    def __len__(self) -> int:
        return len(self._sessions)
