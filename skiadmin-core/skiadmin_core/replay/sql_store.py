"""
SQL Consumption Store
=====================
Consumption store on the ``used_tokens`` table. The unique index on ``jti``
is the serialization point between concurrent consumers.
"""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from skiadmin_core.errors import AlreadyConsumed, StoreUnavailable
from skiadmin_core.models import UsedTokenRow
from .models import ConsumptionRecord, ConsumptionStore

logger = structlog.get_logger(__name__)


class SQLConsumptionStore(ConsumptionStore):
    """Consumption store backed by a table with a unique ``jti`` column."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def exists(self, jti: str) -> bool:
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(UsedTokenRow.id).where(UsedTokenRow.jti == jti).limit(1)
                )
                return result.scalar_one_or_none() is not None
        except OperationalError as e:
            logger.error("Consumption lookup failed", error=str(e))
            raise StoreUnavailable()

    async def insert(self, record: ConsumptionRecord) -> None:
        row = UsedTokenRow(
            jti=record.jti,
            user_id=record.user_id,
            token_type=record.token_type,
            used_at=record.consumed_at,
            expires_at=record.retain_until,
        )
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(row)
        except IntegrityError:
            logger.warning("Replay attack detected", jti=record.jti[:16])
            raise AlreadyConsumed()
        except OperationalError as e:
            logger.error("Consumption insert failed", error=str(e))
            raise StoreUnavailable()

    async def purge_expired(self, now: datetime) -> int:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(UsedTokenRow).where(UsedTokenRow.expires_at <= now)
                    )
            return result.rowcount or 0
        except OperationalError as e:
            logger.error("Consumption purge failed", error=str(e))
            raise StoreUnavailable()
