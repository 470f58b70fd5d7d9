"""
Redis Limiters
==============
Shared lockout counter and send throttle, each a Lua script for atomic
increments.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    NoScriptError,
    TimeoutError as RedisTimeoutError,
)
import structlog

from skiadmin_core.config import utcnow
from skiadmin_core.errors import StoreUnavailable
from .models import FailedAttemptCounter, FailedAttemptLimiter, RateLimitInfo, evaluate_counter
from .request_limiter import ACTION as REQUEST_ACTION, RequestRateLimiter

logger = structlog.get_logger(__name__)

# Lua script for an atomic rolling-window failure count
RECORD_FAILURE_SCRIPT = """
local key = KEYS[1]
local window = tonumber(ARGV[1])
local now = tonumber(ARGV[2])

local saved = redis.call('HMGET', key, 'window_start', 'count')
local start_raw = saved[1]
local window_start = tonumber(start_raw)
local count = tonumber(saved[2]) or 0

-- start is kept as the caller's string; Lua numbers lose sub-second precision
if window_start == nil or now >= window_start + window then
    start_raw = ARGV[2]
    window_start = now
    count = 0
end

count = count + 1
redis.call('HSET', key, 'window_start', start_raw, 'count', count)
redis.call('EXPIRE', key, math.max(1, math.ceil(window_start + window - now)))

return {count, start_raw}
"""

# Lua script for a fixed-window request count; refused requests are not counted
COUNT_REQUEST_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local ttl = tonumber(ARGV[2])

local count = tonumber(redis.call('GET', key) or '0')
if count >= limit then
    return {0, count}
end

count = redis.call('INCR', key)
if count == 1 then
    redis.call('EXPIRE', key, ttl)
end

return {1, count}
"""


class RedisFailedAttemptLimiter(FailedAttemptLimiter):
    """
    Redis-backed failed-attempt limiter.

    All instances share one budget per principal.
    """

    def __init__(
        self,
        redis_client: Redis,
        threshold: int = 5,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            redis_client: Async Redis client
            threshold: Failures per window before lockout
            window: Window length
        """
        super().__init__(threshold=threshold, window=window)
        self.redis = redis_client
        self._clock = clock
        self._script_sha: Optional[str] = None

    async def _ensure_script(self) -> str:
        """Load Lua script into Redis if needed."""
        if self._script_sha is None:
            self._script_sha = await self.redis.script_load(RECORD_FAILURE_SCRIPT)
        return self._script_sha

    async def check_failed_attempts(self, principal: str) -> RateLimitInfo:
        try:
            window_start, count = await self.redis.hmget(self.get_key(principal), "window_start", "count")
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Failed-attempt check failed", error=str(e))
            raise StoreUnavailable()

        counter = None
        if window_start is not None and count is not None:
            counter = FailedAttemptCounter(
                principal=principal,
                count=int(count),
                window_start=datetime.fromtimestamp(float(window_start), tz=timezone.utc),
                window=self.window,
            )
        return evaluate_counter(counter, self.threshold, self._clock())

    async def record_failed_attempt(self, principal: str) -> RateLimitInfo:
        now = self._clock()
        args = (int(self.window.total_seconds()), repr(now.timestamp()))
        try:
            try:
                count, window_start = await self.redis.evalsha(
                    await self._ensure_script(), 1, self.get_key(principal), *args
                )
            except NoScriptError:
                # Script cache flushed (restart or SCRIPT FLUSH)
                self._script_sha = None
                count, window_start = await self.redis.evalsha(
                    await self._ensure_script(), 1, self.get_key(principal), *args
                )
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Failed-attempt record failed", error=str(e))
            raise StoreUnavailable()

        counter = FailedAttemptCounter(
            principal=principal,
            count=int(count),
            window_start=datetime.fromtimestamp(float(window_start), tz=timezone.utc),
            window=self.window,
        )
        return evaluate_counter(counter, self.threshold, now)

    async def reset_failed_attempts(self, principal: str) -> None:
        try:
            await self.redis.delete(self.get_key(principal))
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Failed-attempt reset failed", error=str(e))
            raise StoreUnavailable()


class RedisRequestRateLimiter(RequestRateLimiter):
    """
    Redis-backed fixed-window request limiter.

    One key per identifier and window; keys expire with their window.
    """

    def __init__(
        self,
        redis_client: Redis,
        rate: int = 100,
        window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(rate=rate, window=window, clock=clock)
        self.redis = redis_client
        self._script_sha: Optional[str] = None

    async def _ensure_script(self) -> str:
        if self._script_sha is None:
            self._script_sha = await self.redis.script_load(COUNT_REQUEST_SCRIPT)
        return self._script_sha

    def get_key(self, key: str, window_start: int) -> str:
        return f"{REQUEST_ACTION}:{key}:{window_start}"

    async def check(self, key: str) -> RateLimitInfo:
        now = self._clock()
        window_start = self.window_start(now)
        ttl = max(window_start + self.window_seconds - int(now.timestamp()), 1)
        args = (self.rate, ttl)
        redis_key = self.get_key(key, window_start)
        try:
            try:
                allowed, count = await self.redis.evalsha(await self._ensure_script(), 1, redis_key, *args)
            except NoScriptError:
                self._script_sha = None
                allowed, count = await self.redis.evalsha(await self._ensure_script(), 1, redis_key, *args)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Request count failed", error=str(e))
            raise StoreUnavailable()

        return self._info(bool(int(allowed)), int(count), window_start, now)
