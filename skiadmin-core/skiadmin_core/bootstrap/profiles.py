"""
Profile Stores
==============
Identity/profile collaborator of the bootstrap flow.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from skiadmin_core.errors import NotFound, StoreUnavailable
from skiadmin_core.models import ProfileRow, as_utc
from .models import Profile

logger = structlog.get_logger(__name__)


class ProfileStore(ABC):
    """Reads profiles and records credential and verification changes."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """Profile by user id, or None."""

    @abstractmethod
    async def set_credential(self, user_id: str, password_hash: str) -> None:
        """Store the new credential hash. Raises NotFound."""

    @abstractmethod
    async def mark_verified(self, user_id: str, verified_at: datetime, via_token: Optional[str] = None) -> None:
        """Set the verification marker. Raises NotFound."""


class InMemoryProfileStore(ProfileStore):
    """Dict-backed profile store for development and testing."""

    def __init__(self):
        self._profiles: Dict[str, Profile] = {}
        self._lock = asyncio.Lock()

    def add(self, profile: Profile) -> None:
        self._profiles[profile.id] = profile

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        profile = self._profiles.get(user_id)
        return replace(profile) if profile is not None else None

    async def set_credential(self, user_id: str, password_hash: str) -> None:
        async with self._lock:
            if user_id not in self._profiles:
                raise NotFound()
            self._profiles[user_id].password_hash = password_hash

    async def mark_verified(self, user_id: str, verified_at: datetime, via_token: Optional[str] = None) -> None:
        async with self._lock:
            if user_id not in self._profiles:
                raise NotFound()
            profile = self._profiles[user_id]
            profile.email_verified_at = verified_at
            profile.setup_completed_via_token = via_token


class SQLProfileStore(ProfileStore):
    """Profile store on the ``profiles`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def add(self, profile: Profile) -> None:
        async with self._sessions() as session:
            async with session.begin():
                session.add(ProfileRow(
                    id=profile.id,
                    email=profile.email,
                    role=profile.role,
                    club_id=profile.club_id,
                    email_verified_at=profile.email_verified_at,
                    password_hash=profile.password_hash,
                ))

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            async with self._sessions() as session:
                row = (
                    await session.execute(select(ProfileRow).where(ProfileRow.id == user_id))
                ).scalar_one_or_none()
        except OperationalError as e:
            logger.error("Profile lookup failed", error=str(e))
            raise StoreUnavailable()

        if row is None:
            return None
        return Profile(
            id=row.id,
            email=row.email,
            role=row.role,
            club_id=row.club_id,
            email_verified_at=as_utc(row.email_verified_at),
            password_hash=row.password_hash,
            setup_completed_via_token=row.setup_completed_via_token,
        )

    async def set_credential(self, user_id: str, password_hash: str) -> None:
        await self._update(user_id, password_hash=password_hash)

    async def mark_verified(self, user_id: str, verified_at: datetime, via_token: Optional[str] = None) -> None:
        await self._update(user_id, email_verified_at=verified_at, setup_completed_via_token=via_token)

    async def _update(self, user_id: str, **values) -> None:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    result = await session.execute(
                        update(ProfileRow).where(ProfileRow.id == user_id).values(**values)
                    )
        except OperationalError as e:
            logger.error("Profile update failed", error=str(e))
            raise StoreUnavailable()
        if result.rowcount == 0:
            raise NotFound()
