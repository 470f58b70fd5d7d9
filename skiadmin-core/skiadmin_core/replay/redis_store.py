"""
Redis Consumption Store
=======================
Consumption store on Redis ``SET NX``. Keys expire with the retention
period, so no purge pass is needed.
"""

import json
from datetime import datetime

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
import structlog

from skiadmin_core.errors import AlreadyConsumed, StoreUnavailable
from .models import ConsumptionRecord, ConsumptionStore

logger = structlog.get_logger(__name__)


class RedisConsumptionStore(ConsumptionStore):
    """Distributed consumption store for multi-instance deployments."""

    def __init__(self, redis: Redis, prefix: str = "used_token"):
        self.redis = redis
        self.prefix = prefix

    def _key(self, jti: str) -> str:
        return f"{self.prefix}:{jti}"

    async def exists(self, jti: str) -> bool:
        try:
            return bool(await self.redis.exists(self._key(jti)))
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Consumption lookup failed", error=str(e))
            raise StoreUnavailable()

    async def insert(self, record: ConsumptionRecord) -> None:
        ttl = max(int((record.retain_until - record.consumed_at).total_seconds()), 1)
        value = json.dumps({
            "user_id": record.user_id,
            "token_type": record.token_type,
            "consumed_at": record.consumed_at.isoformat(),
        })
        try:
            created = await self.redis.set(self._key(record.jti), value, nx=True, ex=ttl)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Consumption insert failed", error=str(e))
            raise StoreUnavailable()

        if not created:
            logger.warning("Replay attack detected", jti=record.jti[:16])
            raise AlreadyConsumed()

    async def purge_expired(self, now: datetime) -> int:
        return 0
