"""
Replay Guard
============
Single-use enforcement for setup tokens.
"""

from datetime import datetime, timedelta
from typing import Callable
import structlog

from skiadmin_core.config import utcnow
from skiadmin_core import metrics
from .models import ConsumptionRecord, ConsumptionStore

logger = structlog.get_logger(__name__)

# Consumed identifiers outlive any token issued against them
DEFAULT_RETENTION = timedelta(days=30)


class ReplayGuard:
    """Records consumed token identifiers so a token works at most once."""

    def __init__(
        self,
        store: ConsumptionStore,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.retention = retention
        self._clock = clock

    async def is_consumed(self, jti: str) -> bool:
        """Check whether a token identifier has already been used."""
        return await self.store.exists(jti)

    async def mark_consumed(self, jti: str, user_id: str, token_type: str) -> ConsumptionRecord:
        """
        Burn a token identifier.

        Raises:
            AlreadyConsumed: another caller consumed it first
        """
        now = self._clock()
        record = ConsumptionRecord(
            jti=jti,
            user_id=user_id,
            token_type=token_type,
            consumed_at=now,
            retain_until=now + self.retention,
        )
        await self.store.insert(record)
        metrics.TOKENS_CONSUMED.labels(token_type=token_type).inc()
        logger.info("Setup token consumed", user_id=user_id, token_type=token_type)
        return record

    async def purge_expired(self) -> int:
        """Drop records past retention; for an external janitor."""
        removed = await self.store.purge_expired(self._clock())
        if removed:
            logger.info("Consumed tokens purged", count=removed)
        return removed
