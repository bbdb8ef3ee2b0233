"""
Redis implementation of SessionStore.

Sessions are stored as JSON under "{prefix}:{user_id}". The logical TTL is
still decided by is_expired on read; the Redis key expiry is only a backstop
so abandoned keys eventually disappear without a sweep.
"""

from datetime import datetime, timedelta

import structlog
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from civic_assistant.core.errors import StoreUnavailable
from civic_assistant.core.session.store import DEFAULT_SESSION_TTL, SessionStore, is_expired
from civic_assistant.models import Session

logger = structlog.get_logger(__name__)


class RedisSessionStore(SessionStore):
    """Redis-backed session store shared between instances."""

    def __init__(
        self,
        client: Redis,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        key_prefix: str = "civic:session",
        key_expiry_grace: timedelta = timedelta(minutes=10),
    ) -> None:
        """
        Initialize Redis session store.

        Args:
            client: Redis client created with decode_responses=True
            ttl: Logical inactivity TTL
            key_prefix: Prefix for session keys
            key_expiry_grace: Extra Redis key lifetime beyond the logical TTL
        """
        super().__init__(ttl)
        self._client = client
        self._prefix = key_prefix
        self._key_expiry = ttl + key_expiry_grace

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    def _user_id(self, key: str) -> str:
        return key[len(self._prefix) + 1:]

    async def _load(self, user_id: str) -> Session | None:
        try:
            data = await self._client.get(self._key(user_id))
        except RedisError as e:
            logger.error("redis_get_error", user_id=user_id, error=str(e))
            raise StoreUnavailable(f"Failed to read session: {e}") from e

        if data is None:
            return None

        try:
            return Session.model_validate_json(data)
        except ValidationError as e:
            # An unreadable record cannot be resumed; drop it so the user restarts cleanly
            logger.error("redis_session_corrupt", user_id=user_id, error=str(e))
            await self.delete(user_id)
            return None

    async def get(self, user_id: str, now: datetime) -> Session | None:
        session = await self._load(user_id)
        if session is None or is_expired(session, now, self.ttl):
            return None
        return session

    async def put(self, user_id: str, session: Session) -> None:
        self._check_key(user_id, session)
        try:
            await self._client.set(
                self._key(user_id),
                session.model_dump_json(),
                ex=int(self._key_expiry.total_seconds()),
            )
        except RedisError as e:
            logger.error("redis_set_error", user_id=user_id, error=str(e))
            raise StoreUnavailable(f"Failed to save session: {e}") from e

    async def delete(self, user_id: str) -> bool:
        try:
            return await self._client.delete(self._key(user_id)) > 0
        except RedisError as e:
            logger.error("redis_delete_error", user_id=user_id, error=str(e))
            raise StoreUnavailable(f"Failed to delete session: {e}") from e

    async def expired_user_ids(self, now: datetime) -> list[str]:
        expired = []
        try:
            async for key in self._client.scan_iter(match=f"{self._prefix}:*"):
                user_id = self._user_id(key)
                session = await self._load(user_id)
                if session is not None and is_expired(session, now, self.ttl):
                    expired.append(user_id)
        except RedisError as e:
            logger.error("redis_scan_error", error=str(e))
            raise StoreUnavailable(f"Failed to scan sessions: {e}") from e
        return expired

    async def evict_if_expired(self, user_id: str, now: datetime) -> bool:
        session = await self._load(user_id)
        if session is None or not is_expired(session, now, self.ttl):
            return False
        return await self.delete(user_id)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._client.aclose()
