"""
Tests for Replay Guard
======================
Single-use enforcement across the consumption stores.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET NX and EXISTS."""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        self.ttls[key] = ex
        return True

    async def exists(self, key):
        return int(key in self.values)


class TestReplayGuard:
    """Tests for the in-memory guard."""

    @pytest.mark.asyncio
    async def test_mark_then_is_consumed(self, guard):
        """Should report a burned identifier as consumed."""
        assert await guard.is_consumed("jti-1") is False

        record = await guard.mark_consumed("jti-1", "user-1", "admin_setup")

        assert await guard.is_consumed("jti-1") is True
        assert record.retain_until - record.consumed_at == timedelta(days=30)

    @pytest.mark.asyncio
    async def test_second_mark_is_already_consumed(self, guard):
        """Should refuse to burn the same identifier twice."""
        from skiadmin_core.errors import AlreadyConsumed

        await guard.mark_consumed("jti-1", "user-1", "admin_setup")
        with pytest.raises(AlreadyConsumed):
            await guard.mark_consumed("jti-1", "user-1", "admin_setup")

    @pytest.mark.asyncio
    async def test_concurrent_marks_yield_one_success(self, guard):
        """Exactly one of many concurrent consumers should win."""
        from skiadmin_core.errors import AlreadyConsumed

        results = await asyncio.gather(
            *[guard.mark_consumed("jti-race", "user-1", "admin_setup") for _ in range(10)],
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, AlreadyConsumed)]
        assert len(winners) == 1
        assert len(losers) == 9

    @pytest.mark.asyncio
    async def test_purge_keeps_records_inside_retention(self, guard, clock):
        """Should only purge records past their retention."""
        await guard.mark_consumed("old", "user-1", "admin_setup")
        clock.advance(days=29)
        await guard.mark_consumed("new", "user-2", "admin_setup")
        clock.advance(days=1)

        assert await guard.purge_expired() == 1
        assert await guard.is_consumed("old") is False
        assert await guard.is_consumed("new") is True


class TestSQLConsumptionStore:
    """Tests for the used_tokens table store."""

    @pytest.mark.asyncio
    async def test_insert_and_exists(self, sql_sessions, clock):
        """Should persist a consumption record."""
        from skiadmin_core.replay import ReplayGuard, SQLConsumptionStore

        guard = ReplayGuard(SQLConsumptionStore(sql_sessions), clock=clock)
        await guard.mark_consumed("jti-sql", "user-1", "admin_setup")

        assert await guard.is_consumed("jti-sql") is True
        assert await guard.is_consumed("other") is False

    @pytest.mark.asyncio
    async def test_duplicate_insert_maps_to_already_consumed(self, sql_sessions, clock):
        """Should turn the unique-index violation into AlreadyConsumed."""
        from skiadmin_core.errors import AlreadyConsumed
        from skiadmin_core.replay import ReplayGuard, SQLConsumptionStore

        guard = ReplayGuard(SQLConsumptionStore(sql_sessions), clock=clock)
        await guard.mark_consumed("jti-sql", "user-1", "admin_setup")

        with pytest.raises(AlreadyConsumed):
            await guard.mark_consumed("jti-sql", "user-1", "admin_setup")

    @pytest.mark.asyncio
    async def test_purge_expired(self, sql_sessions, clock):
        """Should delete rows whose retention has passed."""
        from skiadmin_core.replay import ReplayGuard, SQLConsumptionStore

        guard = ReplayGuard(SQLConsumptionStore(sql_sessions), clock=clock)
        await guard.mark_consumed("jti-old", "user-1", "admin_setup")
        clock.advance(days=31)

        assert await guard.purge_expired() == 1
        assert await guard.is_consumed("jti-old") is False


class TestRedisConsumptionStore:
    """Tests for the SET NX store."""

    def _record(self, jti="jti-redis"):
        from skiadmin_core.replay import ConsumptionRecord

        now = datetime(2026, 1, 15, tzinfo=timezone.utc)
        return ConsumptionRecord(jti, "user-1", "admin_setup", now, now + timedelta(days=30))

    @pytest.mark.asyncio
    async def test_set_nx_with_retention_ttl(self):
        """Should store the key with the retention as its TTL."""
        from skiadmin_core.replay import RedisConsumptionStore

        redis = FakeRedis()
        store = RedisConsumptionStore(redis)
        await store.insert(self._record())

        assert await store.exists("jti-redis") is True
        assert redis.ttls["used_token:jti-redis"] == 30 * 24 * 3600

    @pytest.mark.asyncio
    async def test_second_insert_is_already_consumed(self):
        """Should reject a key that already exists."""
        from skiadmin_core.errors import AlreadyConsumed
        from skiadmin_core.replay import RedisConsumptionStore

        store = RedisConsumptionStore(FakeRedis())
        await store.insert(self._record())

        with pytest.raises(AlreadyConsumed):
            await store.insert(self._record())

    @pytest.mark.asyncio
    async def test_connection_error_is_store_unavailable(self):
        """Should surface a retryable error when Redis is down."""
        from skiadmin_core.errors import StoreUnavailable
        from skiadmin_core.replay import RedisConsumptionStore

        redis = AsyncMock()
        redis.exists.side_effect = RedisConnectionError("down")
        store = RedisConsumptionStore(redis)

        with pytest.raises(StoreUnavailable) as exc:
            await store.exists("jti")
        assert exc.value.retryable is True
