"""
OTP Store
=========
Store contract for live one-time codes and the in-memory implementation.

All mutation after issue goes through ``update``, an atomic read-modify-write
on one ``(user_id, purpose)`` key, so two concurrent guesses can never both
be evaluated against the same ``attempts_used``.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple, TypeVar

from .models import OTPEntry, OTPPurpose

T = TypeVar("T")

# Receives the current entry (or None) and returns (next_entry, result).
# Returning the same object leaves the store untouched; None deletes.
Mutator = Callable[[Optional[OTPEntry]], Tuple[Optional[OTPEntry], T]]


class OTPStore(ABC):
    """Upsert-by-key store of live codes keyed by ``(user_id, purpose)``."""

    @abstractmethod
    async def get(self, user_id: str, purpose: OTPPurpose) -> Optional[OTPEntry]:
        """Read the current entry, expired or not."""

    @abstractmethod
    async def replace(self, entry: OTPEntry) -> None:
        """Insert ``entry``, superseding any existing entry for its key."""

    @abstractmethod
    async def update(self, user_id: str, purpose: OTPPurpose, mutator: Mutator[T]) -> T:
        """Apply ``mutator`` atomically to the entry for the key."""

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """Delete expired entries. Returns the number removed."""


class InMemoryOTPStore(OTPStore):
    """
    In-memory OTP store with a lock per key.

    For development and testing only.
    Use SQLOTPStore in production.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, OTPPurpose], OTPEntry] = {}
        self._locks: Dict[Tuple[str, OTPPurpose], asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, user_id: str, purpose: OTPPurpose) -> Optional[OTPEntry]:
        return self._entries.get((user_id, purpose))

    async def replace(self, entry: OTPEntry) -> None:
        key = (entry.user_id, entry.purpose)
        async with self._locks[key]:
            self._entries[key] = entry

    async def update(self, user_id: str, purpose: OTPPurpose, mutator: Mutator[T]) -> T:
        key = (user_id, purpose)
        async with self._locks[key]:
            current = self._entries.get(key)
            new, result = mutator(current)
            if new is current:
                return result
            if new is None:
                self._entries.pop(key, None)
            else:
                self._entries[key] = new
            return result

    async def purge_expired(self, now: datetime) -> int:
        removed = 0
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            async with self._locks[key]:
                entry = self._entries.get(key)
                if entry is not None and entry.is_expired(now):
                    del self._entries[key]
                    removed += 1
        return removed
