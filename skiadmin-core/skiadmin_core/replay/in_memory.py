"""
In-Memory Consumption Store
===========================
Single-process consumption store for development and testing.
"""

import asyncio
from datetime import datetime
from typing import Dict
import structlog

from skiadmin_core.errors import AlreadyConsumed
from .models import ConsumptionRecord, ConsumptionStore

logger = structlog.get_logger(__name__)


class InMemoryConsumptionStore(ConsumptionStore):
    """
    In-memory consumption store.

    For development and testing only.
    Use SQLConsumptionStore or RedisConsumptionStore in production.
    """

    def __init__(self):
        self._records: Dict[str, ConsumptionRecord] = {}
        self._lock = asyncio.Lock()

    async def exists(self, jti: str) -> bool:
        return jti in self._records

    async def insert(self, record: ConsumptionRecord) -> None:
        async with self._lock:
            if record.jti in self._records:
                logger.warning("Replay attack detected", jti=record.jti[:16])
                raise AlreadyConsumed()
            self._records[record.jti] = record

    async def purge_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [
                jti for jti, record in self._records.items()
                if record.retain_until <= now
            ]
            for jti in expired:
                del self._records[jti]
        return len(expired)

    def get(self, jti: str) -> ConsumptionRecord:
        """Return the stored record (raises KeyError if absent)."""
        return self._records[jti]

    def __len__(self) -> int:
        return len(self._records)
