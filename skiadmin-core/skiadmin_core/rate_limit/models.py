"""
Rate Limit Models
=================
Results, counters and the failed-attempt limiter contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    count: int
    limit: int
    reset_at: Optional[datetime] = None
    retry_after: Optional[int] = None  # Seconds until retry allowed

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


@dataclass
class FailedAttemptCounter:
    """Failures recorded for one principal inside the current window."""
    principal: str
    count: int
    window_start: datetime
    window: timedelta

    @property
    def window_end(self) -> datetime:
        return self.window_start + self.window

    def is_lapsed(self, now: datetime) -> bool:
        return now >= self.window_end

    def lockout_until(self, threshold: int) -> Optional[datetime]:
        """End of the lockout, or None while under the threshold."""
        if self.count >= threshold:
            return self.window_end
        return None


def evaluate_counter(
    counter: Optional[FailedAttemptCounter],
    threshold: int,
    now: datetime,
) -> RateLimitInfo:
    """Turn a stored counter into an allow/deny decision at ``now``."""
    if counter is None or counter.is_lapsed(now):
        return RateLimitInfo(allowed=True, count=0, limit=threshold)

    lockout_until = counter.lockout_until(threshold)
    if lockout_until is not None:
        return RateLimitInfo(
            allowed=False,
            count=counter.count,
            limit=threshold,
            reset_at=lockout_until,
            retry_after=max(int((lockout_until - now).total_seconds()), 0),
        )

    return RateLimitInfo(
        allowed=True,
        count=counter.count,
        limit=threshold,
        reset_at=counter.window_end,
    )


class FailedAttemptLimiter(ABC):
    """
    Per-principal failed-attempt lockout over a rolling window.

    The window opens at the first failure after the previous one lapsed.
    Independent of any single code's attempt budget.
    """

    def __init__(self, threshold: int = 5, window: timedelta = timedelta(hours=24)):
        """
        Args:
            threshold: Failures within the window that trigger a lockout
            window: Window length measured from the first failure
        """
        self.threshold = threshold
        self.window = window

    @abstractmethod
    async def check_failed_attempts(self, principal: str) -> RateLimitInfo:
        """Read-only: is the principal currently allowed to attempt."""

    @abstractmethod
    async def record_failed_attempt(self, principal: str) -> RateLimitInfo:
        """Count one failure, opening a fresh window if needed."""

    @abstractmethod
    async def reset_failed_attempts(self, principal: str) -> None:
        """Clear the counter after a successful verification."""

    def get_key(self, principal: str) -> str:
        """Storage key for a principal."""
        return f"failed_otp:user:{principal}"
