"""
Rate Limiting
=============
Failed-attempt lockout and request throttles with in-memory, Redis and SQL
backends.
"""

from .models import RateLimitInfo, FailedAttemptCounter, FailedAttemptLimiter, evaluate_counter
from .in_memory import InMemoryFailedAttemptLimiter
from .request_limiter import RequestRateLimiter, InMemoryRequestRateLimiter, OTPRequestThrottle
from .redis_limiter import (
    RedisFailedAttemptLimiter,
    RedisRequestRateLimiter,
    RECORD_FAILURE_SCRIPT,
    COUNT_REQUEST_SCRIPT,
)
from .sql_limiter import SQLFailedAttemptLimiter, SQLRequestRateLimiter

__all__ = [
    # Models
    "RateLimitInfo",
    "FailedAttemptCounter",
    "FailedAttemptLimiter",
    "evaluate_counter",
    # Lockout limiters
    "InMemoryFailedAttemptLimiter",
    "RedisFailedAttemptLimiter",
    "SQLFailedAttemptLimiter",
    # Request throttles
    "RequestRateLimiter",
    "InMemoryRequestRateLimiter",
    "RedisRequestRateLimiter",
    "SQLRequestRateLimiter",
    "OTPRequestThrottle",
    # Scripts
    "RECORD_FAILURE_SCRIPT",
    "COUNT_REQUEST_SCRIPT",
]
