"""
In-Memory Failed-Attempt Limiter
================================
Process-local lockout counter for development and testing.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict
import structlog

from skiadmin_core.config import utcnow
from .models import FailedAttemptCounter, FailedAttemptLimiter, RateLimitInfo, evaluate_counter

logger = structlog.get_logger(__name__)


class InMemoryFailedAttemptLimiter(FailedAttemptLimiter):
    """
    In-memory failed-attempt limiter.

    For development and testing only: every process keeps its own budget.
    Use RedisFailedAttemptLimiter or SQLFailedAttemptLimiter in production.
    """

    def __init__(
        self,
        threshold: int = 5,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(threshold=threshold, window=window)
        self._clock = clock
        self._counters: Dict[str, FailedAttemptCounter] = {}
        self._lock = asyncio.Lock()

    async def check_failed_attempts(self, principal: str) -> RateLimitInfo:
        return evaluate_counter(self._counters.get(principal), self.threshold, self._clock())

    async def record_failed_attempt(self, principal: str) -> RateLimitInfo:
        now = self._clock()
        async with self._lock:
            counter = self._counters.get(principal)
            if counter is None or counter.is_lapsed(now):
                counter = FailedAttemptCounter(
                    principal=principal,
                    count=0,
                    window_start=now,
                    window=self.window,
                )
                self._counters[principal] = counter
            counter.count += 1
            info = evaluate_counter(counter, self.threshold, now)

        if not info.allowed:
            logger.warning("Failed-attempt threshold reached", principal=principal, reset_at=info.reset_at)
        return info

    async def reset_failed_attempts(self, principal: str) -> None:
        async with self._lock:
            self._counters.pop(principal, None)

    def cleanup(self) -> int:
        """Drop lapsed counters. Returns the number removed."""
        now = self._clock()
        lapsed = [key for key, counter in self._counters.items() if counter.is_lapsed(now)]
        for key in lapsed:
            del self._counters[key]
        return len(lapsed)
