"""
SQL Limiters
============
Lockout counter and send throttle on the ``rate_limits`` table, for
deployments that keep all shared state in the relational store.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from skiadmin_core.config import utcnow
from skiadmin_core.errors import StoreUnavailable
from skiadmin_core.models import RateLimitRow, as_utc
from .models import FailedAttemptCounter, FailedAttemptLimiter, RateLimitInfo, evaluate_counter
from .request_limiter import ACTION as REQUEST_ACTION, RequestRateLimiter

logger = structlog.get_logger(__name__)

ACTION = "failed_otp"
MAX_CAS_RETRIES = 5


class _LostRace(Exception):
    pass


class SQLFailedAttemptLimiter(FailedAttemptLimiter):
    """Relational failed-attempt limiter; increments are compare-and-set."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        threshold: int = 5,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(threshold=threshold, window=window)
        self._sessions = session_factory
        self._clock = clock

    def _where(self, principal: str):
        return (RateLimitRow.identifier == f"user:{principal}", RateLimitRow.action == ACTION)

    def _counter(self, principal: str, row: Optional[RateLimitRow]) -> Optional[FailedAttemptCounter]:
        if row is None:
            return None
        return FailedAttemptCounter(
            principal=principal,
            count=row.count,
            window_start=as_utc(row.window_start),
            window=self.window,
        )

    async def check_failed_attempts(self, principal: str) -> RateLimitInfo:
        try:
            async with self._sessions() as session:
                row = (
                    await session.execute(select(RateLimitRow).where(*self._where(principal)))
                ).scalar_one_or_none()
        except OperationalError as e:
            logger.error("Failed-attempt check failed", error=str(e))
            raise StoreUnavailable()
        return evaluate_counter(self._counter(principal, row), self.threshold, self._clock())

    async def record_failed_attempt(self, principal: str) -> RateLimitInfo:
        for _ in range(MAX_CAS_RETRIES):
            try:
                return await self._record_once(principal)
            except _LostRace:
                continue
            except OperationalError as e:
                logger.error("Failed-attempt record failed", error=str(e))
                raise StoreUnavailable()
        raise StoreUnavailable("Failed-attempt counter is under heavy contention")

    async def _record_once(self, principal: str) -> RateLimitInfo:
        now = self._clock()
        async with self._sessions() as session:
            async with session.begin():
                row = (
                    await session.execute(select(RateLimitRow).where(*self._where(principal)))
                ).scalar_one_or_none()
                counter = self._counter(principal, row)

                if row is None:
                    session.add(RateLimitRow(
                        identifier=f"user:{principal}",
                        action=ACTION,
                        count=1,
                        window_start=now,
                    ))
                    try:
                        await session.flush()
                    except IntegrityError:
                        raise _LostRace()
                    counter = FailedAttemptCounter(principal, 1, now, self.window)
                else:
                    if counter.is_lapsed(now):
                        next_count, next_start = 1, now
                    else:
                        next_count, next_start = counter.count + 1, counter.window_start
                    outcome = await session.execute(
                        update(RateLimitRow)
                        .where(
                            *self._where(principal),
                            RateLimitRow.count == row.count,
                            RateLimitRow.window_start == row.window_start,
                        )
                        .values(count=next_count, window_start=next_start)
                    )
                    if outcome.rowcount != 1:
                        raise _LostRace()
                    counter = FailedAttemptCounter(principal, next_count, next_start, self.window)

        return evaluate_counter(counter, self.threshold, now)

    async def reset_failed_attempts(self, principal: str) -> None:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    await session.execute(delete(RateLimitRow).where(*self._where(principal)))
        except OperationalError as e:
            logger.error("Failed-attempt reset failed", error=str(e))
            raise StoreUnavailable()


class SQLRequestRateLimiter(RequestRateLimiter):
    """
    Relational fixed-window request limiter.

    One row per identifier; a row from an earlier window is reused for the
    current one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rate: int = 100,
        window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(rate=rate, window=window, clock=clock)
        self._sessions = session_factory

    def _where(self, key: str):
        return (RateLimitRow.identifier == key, RateLimitRow.action == REQUEST_ACTION)

    async def check(self, key: str) -> RateLimitInfo:
        for _ in range(MAX_CAS_RETRIES):
            try:
                return await self._check_once(key)
            except _LostRace:
                continue
            except OperationalError as e:
                logger.error("Request count failed", error=str(e))
                raise StoreUnavailable()
        raise StoreUnavailable("Request counter is under heavy contention")

    async def _check_once(self, key: str) -> RateLimitInfo:
        now = self._clock()
        window_start = self.window_start(now)
        opened_at = datetime.fromtimestamp(window_start, tz=timezone.utc)

        async with self._sessions() as session:
            async with session.begin():
                row = (await session.execute(select(RateLimitRow).where(*self._where(key)))).scalar_one_or_none()

                if row is None:
                    session.add(RateLimitRow(
                        identifier=key,
                        action=REQUEST_ACTION,
                        count=1,
                        window_start=opened_at,
                    ))
                    try:
                        await session.flush()
                    except IntegrityError:
                        raise _LostRace()
                    return self._info(True, 1, window_start, now)

                count = row.count if as_utc(row.window_start) == opened_at else 0
                if count >= self.rate:
                    return self._info(False, count, window_start, now)

                outcome = await session.execute(
                    update(RateLimitRow)
                    .where(
                        *self._where(key),
                        RateLimitRow.count == row.count,
                        RateLimitRow.window_start == row.window_start,
                    )
                    .values(count=count + 1, window_start=opened_at)
                )
                if outcome.rowcount != 1:
                    raise _LostRace()
                return self._info(True, count + 1, window_start, now)
