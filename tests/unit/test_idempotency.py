"""
Unit Tests for the Idempotency Token Stores.
"""

import pytest

from coverage_engine.services.idempotency import (
    PENDING,
    IdempotencyStore,
    InMemoryIdempotencyStore,
    RedisIdempotencyStore,
)


@pytest.mark.unit
class TestInMemoryIdempotencyStore:

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self):
        store = InMemoryIdempotencyStore()

        assert await store.claim("tok") is True
        assert await store.claim("tok") is False
        assert store.is_pending("tok") is True

    @pytest.mark.asyncio
    async def test_pending_claim_has_no_count(self):
        store = InMemoryIdempotencyStore()
        await store.claim("tok")

        assert await store.get_cached_count("tok") is None

    @pytest.mark.asyncio
    async def test_committed_count_survives_release(self):
        store = InMemoryIdempotencyStore()
        await store.claim("tok")
        await store.set_cached_count("tok", 42)
        await store.release("tok")

        assert await store.get_cached_count("tok") == 42
        assert await store.claim("tok") is False

    @pytest.mark.asyncio
    async def test_release_frees_pending_claim(self):
        store = InMemoryIdempotencyStore()
        await store.claim("tok")
        await store.release("tok")

        assert await store.claim("tok") is True

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryIdempotencyStore(), IdempotencyStore)


@pytest.mark.unit
class TestRedisIdempotencyStore:

    @pytest.fixture
    def store(self, mock_redis):
        return RedisIdempotencyStore(redis=mock_redis, key_prefix="test:idem:", ttl_seconds=600)

    @pytest.mark.asyncio
    async def test_claim_uses_set_nx(self, store, mock_redis):
        assert await store.claim("abc") is True

        mock_redis.set.assert_awaited_once_with("test:idem:abc", PENDING, nx=True, ex=600)

    @pytest.mark.asyncio
    async def test_claim_lost(self, store, mock_redis):
        mock_redis.set.return_value = None

        assert await store.claim("abc") is False

    @pytest.mark.asyncio
    async def test_get_cached_count(self, store, mock_redis):
        mock_redis.get.return_value = "17"

        assert await store.get_cached_count("abc") == 17
        mock_redis.get.assert_awaited_with("test:idem:abc")

    @pytest.mark.asyncio
    async def test_pending_value_is_not_a_count(self, store, mock_redis):
        mock_redis.get.return_value = b"pending"

        assert await store.get_cached_count("abc") is None

    @pytest.mark.asyncio
    async def test_set_cached_count(self, store, mock_redis):
        await store.set_cached_count("abc", 5)

        mock_redis.set.assert_awaited_once_with("test:idem:abc", "5", ex=600)

    @pytest.mark.asyncio
    async def test_release_only_deletes_pending(self, store, mock_redis):
        mock_redis.get.return_value = "9"
        await store.release("abc")
        mock_redis.delete.assert_not_awaited()

        mock_redis.get.return_value = PENDING
        await store.release("abc")
        mock_redis.delete.assert_awaited_once_with("test:idem:abc")

    def test_defaults_from_settings(self, mock_redis):
        store = RedisIdempotencyStore(redis=mock_redis)

        assert store.key_prefix == "coverage:idempotency:"
        assert store.ttl_seconds is None
