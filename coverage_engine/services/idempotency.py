"""
Idempotency Token Store
Records which bulk provisioning tokens already produced a committed count.

A token moves through two values:
- "pending": claimed by a run that has not committed yet
- "<count>": the committed result, replayed to later callers

Source: https://redis.io/docs/latest/commands/set/ (SET NX EX)
Verified: 2026-10-19
"""

import asyncio
from typing import Optional, Protocol, runtime_checkable

from redis.asyncio import Redis

from coverage_engine.api.config import settings
from coverage_engine.utils.logging import get_logger

logger = get_logger(__name__)

PENDING = "pending"


@runtime_checkable
class IdempotencyStore(Protocol):
    """Token -> committed count, with an atomic claim for in-flight runs."""

    async def get_cached_count(self, token: str) -> Optional[int]: ...

    async def set_cached_count(self, token: str, count: int) -> None: ...

    async def claim(self, token: str) -> bool: ...

    async def release(self, token: str) -> None: ...


class InMemoryIdempotencyStore:
    """Process-local store for tests and single-process deployments."""

    def __init__(self):
        self._entries: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get_cached_count(self, token: str) -> Optional[int]:
        value = self._entries.get(token)
        if value is None or value == PENDING:
            return None
        return int(value)

    async def set_cached_count(self, token: str, count: int) -> None:
        async with self._lock:
            self._entries[token] = str(count)

    async def claim(self, token: str) -> bool:
        async with self._lock:
            if token in self._entries:
                return False
            self._entries[token] = PENDING
            return True

    async def release(self, token: str) -> None:
        async with self._lock:
            if self._entries.get(token) == PENDING:
                del self._entries[token]

    def is_pending(self, token: str) -> bool:
        return self._entries.get(token) == PENDING


class RedisIdempotencyStore:
    """
    Redis-backed token store shared by every worker.

    Evidence: SET with NX is atomic, so two workers racing on one token
    cannot both claim it
    Source: https://redis.io/docs/latest/develop/use/patterns/distributed-locks/
    Verified: 2026-10-19
    """

    def __init__(
        self,
        redis: Redis | None = None,
        key_prefix: str | None = None,
        ttl_seconds: int | None = None,
    ):
        self._redis = redis
        self.key_prefix = key_prefix if key_prefix is not None else settings.IDEMPOTENCY_KEY_PREFIX
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.IDEMPOTENCY_TTL_SECONDS

    async def connect(self) -> None:
        """Connect to Redis"""
        if self._redis is None:
            self._redis = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await self._redis.ping()
            logger.info("Idempotency store connected to Redis")

    async def disconnect(self) -> None:
        """Disconnect from Redis"""
        if self._redis:
            await self._redis.close()
            self._redis = None
            logger.info("Idempotency store disconnected from Redis")

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    async def get_cached_count(self, token: str) -> Optional[int]:
        if not self._redis:
            await self.connect()

        value = await self._redis.get(self._key(token))
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        if value == PENDING:
            return None
        return int(value)

    async def set_cached_count(self, token: str, count: int) -> None:
        if not self._redis:
            await self.connect()

        await self._redis.set(self._key(token), str(count), ex=self.ttl_seconds)

    async def claim(self, token: str) -> bool:
        if not self._redis:
            await self.connect()

        claimed = await self._redis.set(self._key(token), PENDING, nx=True, ex=self.ttl_seconds)
        return bool(claimed)

    async def release(self, token: str) -> None:
        """Drop a pending claim; committed counts are kept."""
        if not self._redis:
            await self.connect()

        key = self._key(token)
        value = await self._redis.get(key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        if value == PENDING:
            await self._redis.delete(key)


# Singleton instance
_idempotency_store: RedisIdempotencyStore | None = None


def get_idempotency_store() -> RedisIdempotencyStore:
    """Get singleton Redis idempotency store."""
    global _idempotency_store
    if _idempotency_store is None:
        _idempotency_store = RedisIdempotencyStore()
    return _idempotency_store
