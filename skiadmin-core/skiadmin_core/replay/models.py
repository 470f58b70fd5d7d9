"""
Replay Guard Models
===================
Consumption records and the store contract they are persisted through.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ConsumptionRecord:
    """Proof that a token identifier has been used."""
    jti: str
    user_id: str
    token_type: str
    consumed_at: datetime
    retain_until: datetime


class ConsumptionStore(ABC):
    """
    Insert-if-absent store keyed by token identifier.

    Implementations must make ``insert`` atomic: two concurrent inserts for
    the same ``jti`` yield exactly one success.
    """

    @abstractmethod
    async def exists(self, jti: str) -> bool:
        """Point read: has this identifier been consumed."""

    @abstractmethod
    async def insert(self, record: ConsumptionRecord) -> None:
        """
        Persist a consumption record.

        Raises:
            AlreadyConsumed: a record already exists for ``record.jti``
            StoreUnavailable: the backing store could not be reached
        """

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """Delete records past their retention. Returns the number removed."""
