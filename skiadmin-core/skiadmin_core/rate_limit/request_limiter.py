"""
Request Rate Limiter
====================
Fixed-window request throttles for the code-send path.

Windows are aligned to multiples of the window length, so every instance
sharing a backend agrees on where the current window starts.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple
import structlog

from skiadmin_core.config import utcnow
from skiadmin_core.errors import RateLimited
from .models import RateLimitInfo

logger = structlog.get_logger(__name__)

ACTION = "otp_request"


class RequestRateLimiter(ABC):
    """Counts requests per key and refuses them once the window's quota is spent."""

    def __init__(
        self,
        rate: int = 100,
        window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            rate: Number of requests allowed per window
            window: Window length
        """
        self.rate = rate
        self.window = window
        self._clock = clock

    @property
    def window_seconds(self) -> int:
        return int(self.window.total_seconds())

    def window_start(self, now: datetime) -> int:
        """Epoch second at which the window containing ``now`` opened."""
        return int(now.timestamp() // self.window_seconds) * self.window_seconds

    def _info(self, allowed: bool, count: int, window_start: int, now: datetime) -> RateLimitInfo:
        reset_at = datetime.fromtimestamp(window_start + self.window_seconds, tz=timezone.utc)
        return RateLimitInfo(
            allowed=allowed,
            count=count,
            limit=self.rate,
            reset_at=reset_at,
            retry_after=None if allowed else max(int((reset_at - now).total_seconds()), 0),
        )

    @abstractmethod
    async def check(self, key: str) -> RateLimitInfo:
        """
        Count a request and decide whether it is allowed.

        A refused request is not counted.

        Args:
            key: Unique identifier (e.g., ``user:<id>``, ``ip:<addr>``)

        Returns:
            RateLimitInfo with decision and quota
        """


class InMemoryRequestRateLimiter(RequestRateLimiter):
    """
    Process-local fixed-window limiter.

    For single-instance deployments and tests. Counters from earlier windows
    are dropped as soon as a new window opens.
    """

    def __init__(
        self,
        rate: int = 100,
        window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(rate=rate, window=window, clock=clock)
        self._buckets: Dict[str, Tuple[int, int]] = {}
        self._current_window: Optional[int] = None

    async def check(self, key: str) -> RateLimitInfo:
        now = self._clock()
        window_start = self.window_start(now)

        if self._current_window != window_start:
            self._current_window = window_start
            self.cleanup()

        bucket_window, count = self._buckets.get(key, (window_start, 0))
        if bucket_window != window_start:
            count = 0

        if count >= self.rate:
            return self._info(False, count, window_start, now)

        self._buckets[key] = (window_start, count + 1)
        return self._info(True, count + 1, window_start, now)

    def cleanup(self) -> int:
        """Remove counters from windows before the current one."""
        stale = [key for key, (window, _) in self._buckets.items() if window != self._current_window]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug("Dropped stale request counters", removed=len(stale))
        return len(stale)


LimiterFactory = Callable[[int, timedelta, Callable[[], datetime]], RequestRateLimiter]


class OTPRequestThrottle:
    """Per-user, per-IP and per-contact limits on requesting new codes."""

    def __init__(
        self,
        per_user: int = 3,
        per_ip: int = 10,
        per_contact: int = 3,
        window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
        limiter_factory: Optional[LimiterFactory] = None,
    ):
        """
        Args:
            per_user: Code requests per user per window
            per_ip: Code requests per client address per window
            per_contact: Code requests per e-mail or phone per window
            window: Window length
            limiter_factory: Builds one limiter from ``(rate, window, clock)``;
                defaults to the in-memory limiter
        """
        factory = limiter_factory or InMemoryRequestRateLimiter
        self.limiters: Dict[str, RequestRateLimiter] = {
            "user": factory(per_user, window, clock),
            "ip": factory(per_ip, window, clock),
            "contact": factory(per_contact, window, clock),
        }

    async def check(self, user_id: str, contact: str, ip_address: Optional[str] = None) -> RateLimitInfo:
        """
        Count a code request against every applicable limit.

        Raises:
            RateLimited: any limit is exhausted; carries the reset time
            StoreUnavailable: a shared backend could not be reached

        Returns:
            The per-user quota after counting this request
        """
        user_info = await self._check("user", f"user:{user_id}", "Too many code requests")
        if ip_address:
            await self._check("ip", f"ip:{ip_address}", "Too many requests from this address")
        await self._check("contact", f"contact:{contact.lower()}", "Too many requests for this contact")
        return user_info

    async def _check(self, scope: str, key: str, message: str) -> RateLimitInfo:
        info = await self.limiters[scope].check(key)
        if not info.allowed:
            logger.warning("OTP request throttled", scope=scope, reset_at=info.reset_at)
            minutes = max(((info.retry_after or 0) + 59) // 60, 1)
            raise RateLimited(info.reset_at, f"{message}. Please try again in {minutes} minute(s).")
        return info
