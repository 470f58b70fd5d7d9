"""
Tests for Rate Limiting
=======================
Failed-attempt lockout on every backend and the code-request throttle.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, NoScriptError


class TestInMemoryFailedAttemptLimiter:
    """Tests for the process-local lockout counter."""

    @pytest.fixture
    def limiter(self, clock):
        from skiadmin_core.rate_limit import InMemoryFailedAttemptLimiter

        return InMemoryFailedAttemptLimiter(threshold=5, window=timedelta(hours=24), clock=clock)

    @pytest.mark.asyncio
    async def test_fresh_principal_is_allowed(self, limiter):
        """Should allow a principal with no history."""
        info = await limiter.check_failed_attempts("user-1")

        assert info.allowed is True
        assert info.remaining == 5

    @pytest.mark.asyncio
    async def test_locks_at_threshold(self, limiter, clock):
        """Fifth failure should lock until the window end."""
        start = clock.now
        for _ in range(4):
            assert (await limiter.record_failed_attempt("user-1")).allowed is True
            clock.advance(minutes=1)

        fifth = await limiter.record_failed_attempt("user-1")
        check = await limiter.check_failed_attempts("user-1")

        assert fifth.allowed is False
        assert check.allowed is False
        assert check.reset_at == start + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_window_is_anchored_at_first_failure(self, limiter, clock):
        """Lock should lapse 24h after the first failure, not the last."""
        for _ in range(5):
            await limiter.record_failed_attempt("user-1")
            clock.advance(hours=1)

        clock.advance(hours=18, minutes=59)
        assert (await limiter.check_failed_attempts("user-1")).allowed is False

        clock.advance(minutes=1)
        assert (await limiter.check_failed_attempts("user-1")).allowed is True

    @pytest.mark.asyncio
    async def test_failure_after_lapse_opens_new_window(self, limiter, clock):
        """A failure after the window should start counting from one."""
        for _ in range(4):
            await limiter.record_failed_attempt("user-1")
        clock.advance(hours=24)

        info = await limiter.record_failed_attempt("user-1")

        assert info.allowed is True
        assert info.count == 1
        assert info.reset_at == clock.now + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_reset_clears_counter(self, limiter):
        """Success should wipe the failures."""
        for _ in range(5):
            await limiter.record_failed_attempt("user-1")

        await limiter.reset_failed_attempts("user-1")

        assert (await limiter.check_failed_attempts("user-1")).allowed is True

    @pytest.mark.asyncio
    async def test_principals_are_separate(self, limiter):
        """One principal's lockout should not affect another."""
        for _ in range(5):
            await limiter.record_failed_attempt("user-1")

        assert (await limiter.check_failed_attempts("user-2")).allowed is True

    @pytest.mark.asyncio
    async def test_cleanup_drops_lapsed_counters(self, limiter, clock):
        """Should forget counters whose window has passed."""
        await limiter.record_failed_attempt("user-1")
        clock.advance(hours=25)

        assert limiter.cleanup() == 1


class TestSQLFailedAttemptLimiter:
    """Tests for the rate_limits table counter."""

    @pytest.fixture
    def limiter(self, sql_sessions, clock):
        from skiadmin_core.rate_limit import SQLFailedAttemptLimiter

        return SQLFailedAttemptLimiter(sql_sessions, threshold=5, window=timedelta(hours=24), clock=clock)

    @pytest.mark.asyncio
    async def test_locks_at_threshold_and_resets(self, limiter, clock):
        """Should lock at five failures and clear on reset."""
        start = clock.now
        for _ in range(5):
            info = await limiter.record_failed_attempt("user-1")
            clock.advance(minutes=5)

        check = await limiter.check_failed_attempts("user-1")
        assert info.allowed is False
        assert check.allowed is False
        assert check.reset_at == start + timedelta(hours=24)

        await limiter.reset_failed_attempts("user-1")
        assert (await limiter.check_failed_attempts("user-1")).allowed is True

    @pytest.mark.asyncio
    async def test_new_window_after_lapse(self, limiter, clock):
        """Should restart the count once the window lapsed."""
        for _ in range(3):
            await limiter.record_failed_attempt("user-1")
        clock.advance(hours=24)

        info = await limiter.record_failed_attempt("user-1")

        assert info.count == 1


class TestRedisFailedAttemptLimiter:
    """Tests for the Lua-script counter against a mocked client."""

    def _limiter(self, redis, clock):
        from skiadmin_core.rate_limit import RedisFailedAttemptLimiter

        return RedisFailedAttemptLimiter(redis, threshold=5, window=timedelta(hours=24), clock=clock)

    @pytest.mark.asyncio
    async def test_record_runs_script(self, clock):
        """Should evaluate the cached script with window and time."""
        redis = AsyncMock()
        redis.script_load.return_value = "sha1"
        redis.evalsha.return_value = [5, repr(clock.now.timestamp())]

        info = await self._limiter(redis, clock).record_failed_attempt("user-1")

        redis.evalsha.assert_awaited_once_with(
            "sha1", 1, "failed_otp:user:user-1", 86400, repr(clock.now.timestamp())
        )
        assert info.allowed is False
        assert info.reset_at == clock.now + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_window_keeps_sub_second_start(self, clock):
        """Lockout should end exactly one window after a fractional-second first failure."""
        clock.advance(milliseconds=750)
        redis = AsyncMock()
        redis.script_load.return_value = "sha1"
        redis.evalsha.return_value = [5, repr(clock.now.timestamp())]

        info = await self._limiter(redis, clock).record_failed_attempt("user-1")

        assert info.reset_at == clock.now + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_reloads_flushed_script(self, clock):
        """Should reload the script once after NOSCRIPT."""
        redis = AsyncMock()
        redis.script_load.side_effect = ["old", "new"]
        redis.evalsha.side_effect = [NoScriptError("flushed"), [1, repr(clock.now.timestamp())]]

        info = await self._limiter(redis, clock).record_failed_attempt("user-1")

        assert info.allowed is True
        assert redis.script_load.await_count == 2

    @pytest.mark.asyncio
    async def test_check_reads_hash(self, clock):
        """Should lock from the stored hash fields."""
        redis = AsyncMock()
        redis.hmget.return_value = [str(int(clock.now.timestamp())), "5"]

        info = await self._limiter(redis, clock).check_failed_attempts("user-1")

        assert info.allowed is False

    @pytest.mark.asyncio
    async def test_unreachable_redis_fails_closed(self, clock):
        """Should raise StoreUnavailable rather than allow the attempt."""
        from skiadmin_core.errors import StoreUnavailable

        redis = AsyncMock()
        redis.hmget.side_effect = RedisConnectionError("down")

        with pytest.raises(StoreUnavailable):
            await self._limiter(redis, clock).check_failed_attempts("user-1")


class TestOTPRequestThrottle:
    """Tests for code-request throttles."""

    @pytest.mark.asyncio
    async def test_per_user_limit(self, clock):
        """Fourth request in an hour should be throttled."""
        from skiadmin_core.errors import RateLimited
        from skiadmin_core.rate_limit import OTPRequestThrottle

        throttle = OTPRequestThrottle(clock=clock)
        for i in range(3):
            await throttle.check("user-1", f"c{i}@b.test", "10.0.0.1")

        with pytest.raises(RateLimited) as exc:
            await throttle.check("user-1", "c9@b.test", "10.0.0.1")
        assert exc.value.status_code == 429
        assert "resetAt" in exc.value.to_dict()

    @pytest.mark.asyncio
    async def test_per_contact_limit_across_users(self, clock):
        """The same contact should be limited regardless of user."""
        from skiadmin_core.errors import RateLimited
        from skiadmin_core.rate_limit import OTPRequestThrottle

        throttle = OTPRequestThrottle(clock=clock)
        for i in range(3):
            await throttle.check(f"user-{i}", "a@b.test")

        with pytest.raises(RateLimited):
            await throttle.check("user-9", "A@B.test")

    @pytest.mark.asyncio
    async def test_window_rolls_over(self, clock):
        """A new window should restore the quota."""
        from skiadmin_core.rate_limit import OTPRequestThrottle

        throttle = OTPRequestThrottle(clock=clock)
        for _ in range(3):
            await throttle.check("user-1", "a@b.test")
        clock.advance(hours=1)

        assert (await throttle.check("user-1", "a@b.test")).allowed is True

    @pytest.mark.asyncio
    async def test_stale_counters_are_dropped(self, clock):
        """Counters from a finished window should not be kept."""
        from skiadmin_core.rate_limit import InMemoryRequestRateLimiter

        limiter = InMemoryRequestRateLimiter(rate=10, window=timedelta(hours=1), clock=clock)
        for i in range(5):
            await limiter.check(f"ip:10.0.0.{i}")
        clock.advance(hours=1)

        await limiter.check("ip:10.0.0.99")

        assert list(limiter._buckets) == ["ip:10.0.0.99"]


class TestSQLRequestRateLimiter:
    """Tests for the send throttle on the rate_limits table."""

    @pytest.mark.asyncio
    async def test_budget_is_shared_between_throttles(self, sql_sessions, clock):
        """Two throttles on one database should spend a single budget."""
        from functools import partial

        from skiadmin_core.errors import RateLimited
        from skiadmin_core.rate_limit import OTPRequestThrottle, SQLRequestRateLimiter

        first = OTPRequestThrottle(clock=clock, limiter_factory=partial(SQLRequestRateLimiter, sql_sessions))
        second = OTPRequestThrottle(clock=clock, limiter_factory=partial(SQLRequestRateLimiter, sql_sessions))

        await first.check("user-1", "a@b.test")
        await second.check("user-1", "b@b.test")
        await first.check("user-1", "c@b.test")

        with pytest.raises(RateLimited) as exc:
            await second.check("user-1", "d@b.test")
        assert exc.value.to_dict()["resetAt"] == "2026-01-15T13:00:00+00:00"

    @pytest.mark.asyncio
    async def test_row_is_reused_in_next_window(self, sql_sessions, clock):
        """An old window's row should restart from one."""
        from skiadmin_core.rate_limit import SQLRequestRateLimiter

        limiter = SQLRequestRateLimiter(sql_sessions, rate=3, window=timedelta(hours=1), clock=clock)
        for _ in range(3):
            await limiter.check("user:user-1")
        assert (await limiter.check("user:user-1")).allowed is False

        clock.advance(hours=1)
        info = await limiter.check("user:user-1")

        assert info.allowed is True
        assert info.count == 1

    @pytest.mark.asyncio
    async def test_production_services_share_budget(self, sql_engine):
        """Two service containers on one engine should enforce one per-user limit."""
        from skiadmin_core.api import AuthServices
        from skiadmin_core.config import Settings
        from skiadmin_core.errors import RateLimited

        settings = Settings(jwt_secret_key="s3cret")
        first = AuthServices.from_settings(settings, engine=sql_engine)
        second = AuthServices.from_settings(settings, engine=sql_engine)

        allowed = 0
        for i in range(6):
            services = first if i % 2 == 0 else second
            try:
                await services.throttle.check("u1", f"c{i}@b.test")
                allowed += 1
            except RateLimited:
                pass

        assert allowed == 3


class TestRedisRequestRateLimiter:
    """Tests for the Lua-script send throttle against a mocked client."""

    @pytest.mark.asyncio
    async def test_counts_in_window_key(self, clock):
        """Should run the script on a key scoped to the current window."""
        from skiadmin_core.rate_limit import RedisRequestRateLimiter

        clock.advance(minutes=15)
        redis = AsyncMock()
        redis.script_load.return_value = "sha1"
        redis.evalsha.return_value = [1, 2]
        limiter = RedisRequestRateLimiter(redis, rate=3, window=timedelta(hours=1), clock=clock)

        info = await limiter.check("user:user-1")

        window_start = int(clock.now.timestamp()) - 15 * 60
        redis.evalsha.assert_awaited_once_with(
            "sha1", 1, f"otp_request:user:user-1:{window_start}", 3, 45 * 60
        )
        assert info.allowed is True
        assert info.count == 2

    @pytest.mark.asyncio
    async def test_refused_when_spent(self, clock):
        """Should refuse once the script reports the quota is spent."""
        from skiadmin_core.errors import RateLimited
        from skiadmin_core.rate_limit import OTPRequestThrottle, RedisRequestRateLimiter
        from functools import partial

        redis = AsyncMock()
        redis.script_load.return_value = "sha1"
        redis.evalsha.return_value = [0, 3]
        throttle = OTPRequestThrottle(clock=clock, limiter_factory=partial(RedisRequestRateLimiter, redis))

        with pytest.raises(RateLimited):
            await throttle.check("user-1", "a@b.test")

    @pytest.mark.asyncio
    async def test_unreachable_redis_fails_closed(self, clock):
        """Should raise StoreUnavailable rather than allow the send."""
        from skiadmin_core.errors import StoreUnavailable
        from skiadmin_core.rate_limit import RedisRequestRateLimiter

        redis = AsyncMock()
        redis.script_load.side_effect = RedisConnectionError("down")
        limiter = RedisRequestRateLimiter(redis, rate=3, clock=clock)

        with pytest.raises(StoreUnavailable):
            await limiter.check("user:user-1")
