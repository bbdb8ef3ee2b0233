"""Session storage with TTL expiry and per-user locking."""

from datetime import timedelta

from civic_assistant.config import Settings, get_settings
from civic_assistant.core.session.locks import SessionLockManager
from civic_assistant.core.session.redis_store import RedisSessionStore
from civic_assistant.core.session.store import (
    DEFAULT_SESSION_TTL,
    InMemorySessionStore,
    SessionStore,
    is_expired,
)


def create_session_store(settings: Settings | None = None) -> SessionStore:
    """Build the configured session store backend."""
    settings = settings or get_settings()
    ttl = timedelta(seconds=settings.conversation.session_ttl_seconds)

    if settings.redis.enabled:
        from redis.asyncio import Redis

        client = Redis.from_url(settings.redis.url, decode_responses=True)
        return RedisSessionStore(
            client,
            ttl=ttl,
            key_prefix=settings.redis.key_prefix,
            key_expiry_grace=timedelta(seconds=settings.redis.key_expiry_grace_seconds),
        )
    return InMemorySessionStore(ttl=ttl)


__all__ = [
    "DEFAULT_SESSION_TTL",
    "InMemorySessionStore",
    "RedisSessionStore",
    "SessionLockManager",
    "SessionStore",
    "create_session_store",
    "is_expired",
]
