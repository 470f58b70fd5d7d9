"""
SQL OTP Store
=============
OTP store on the ``verification_codes`` table, keyed by ``(user_id, purpose)``.

Updates are compare-and-set on the ``version`` column: a write only lands if
the row still carries the version that was read. A lost race re-reads and
re-applies the mutator.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from skiadmin_core.errors import StoreUnavailable
from skiadmin_core.models import VerificationCodeRow, as_utc
from .models import OTPEntry, OTPPurpose
from .store import Mutator, OTPStore, T

logger = structlog.get_logger(__name__)

MAX_CAS_RETRIES = 5


class _LostRace(Exception):
    """The row changed between read and write."""


def _to_entry(row: VerificationCodeRow) -> OTPEntry:
    return OTPEntry(
        id=row.id,
        user_id=row.user_id,
        purpose=OTPPurpose(row.purpose),
        contact=row.contact,
        code_hash=row.code_hash,
        salt=row.salt,
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
        attempts_max=row.attempts_max,
        attempts_used=row.attempts_used,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        version=row.version,
    )


def _to_row(entry: OTPEntry, version: int) -> VerificationCodeRow:
    return VerificationCodeRow(
        user_id=entry.user_id,
        purpose=entry.purpose.value,
        id=entry.id,
        contact=entry.contact,
        code_hash=entry.code_hash,
        salt=entry.salt,
        created_at=entry.created_at,
        expires_at=entry.expires_at,
        attempts_used=entry.attempts_used,
        attempts_max=entry.attempts_max,
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        version=version,
    )


def _key(user_id: str, purpose: OTPPurpose):
    return (
        VerificationCodeRow.user_id == user_id,
        VerificationCodeRow.purpose == purpose.value,
    )


class SQLOTPStore(OTPStore):
    """Relational OTP store with optimistic concurrency control."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_retries: int = MAX_CAS_RETRIES,
    ):
        self._sessions = session_factory
        self.max_retries = max_retries

    async def get(self, user_id: str, purpose: OTPPurpose) -> Optional[OTPEntry]:
        try:
            async with self._sessions() as session:
                row = (
                    await session.execute(select(VerificationCodeRow).where(*_key(user_id, purpose)))
                ).scalar_one_or_none()
                return _to_entry(row) if row is not None else None
        except OperationalError as e:
            logger.error("OTP lookup failed", error=str(e))
            raise StoreUnavailable()

    async def replace(self, entry: OTPEntry) -> None:
        for _ in range(self.max_retries):
            try:
                async with self._sessions() as session:
                    async with session.begin():
                        await session.execute(
                            delete(VerificationCodeRow).where(*_key(entry.user_id, entry.purpose))
                        )
                        session.add(_to_row(entry, version=0))
                return
            except IntegrityError:
                # Concurrent issue for the same key; the later writer wins
                continue
            except OperationalError as e:
                logger.error("OTP replace failed", error=str(e))
                raise StoreUnavailable()
        raise StoreUnavailable("Could not store verification code")

    async def update(self, user_id: str, purpose: OTPPurpose, mutator: Mutator[T]) -> T:
        for attempt in range(self.max_retries):
            try:
                return await self._update_once(user_id, purpose, mutator)
            except _LostRace:
                logger.debug("OTP update lost race", attempt=attempt + 1)
            except OperationalError as e:
                logger.error("OTP update failed", error=str(e))
                raise StoreUnavailable()
        raise StoreUnavailable("Verification code is under heavy contention")

    async def _update_once(self, user_id: str, purpose: OTPPurpose, mutator: Mutator[T]) -> T:
        async with self._sessions() as session:
            async with session.begin():
                row = (
                    await session.execute(select(VerificationCodeRow).where(*_key(user_id, purpose)))
                ).scalar_one_or_none()
                current = _to_entry(row) if row is not None else None
                new, result = mutator(current)

                if new is current:
                    return result

                if current is None:
                    session.add(_to_row(new, version=0))
                    try:
                        await session.flush()
                    except IntegrityError:
                        raise _LostRace()
                    return result

                guard = (*_key(user_id, purpose), VerificationCodeRow.version == current.version)
                if new is None:
                    outcome = await session.execute(delete(VerificationCodeRow).where(*guard))
                else:
                    outcome = await session.execute(
                        update(VerificationCodeRow)
                        .where(*guard)
                        .values(
                            id=new.id,
                            contact=new.contact,
                            code_hash=new.code_hash,
                            salt=new.salt,
                            created_at=new.created_at,
                            expires_at=new.expires_at,
                            attempts_used=new.attempts_used,
                            attempts_max=new.attempts_max,
                            version=current.version + 1,
                        )
                    )
                if outcome.rowcount != 1:
                    raise _LostRace()
                return result

    async def purge_expired(self, now: datetime) -> int:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(VerificationCodeRow).where(VerificationCodeRow.expires_at < now)
                    )
            return result.rowcount or 0
        except OperationalError as e:
            logger.error("OTP purge failed", error=str(e))
            raise StoreUnavailable()
