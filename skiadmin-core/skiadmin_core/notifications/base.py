"""
Notifier Base
=============
Delivery channel contract for codes and setup links.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DeliveryMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"


@dataclass(frozen=True)
class Notification:
    """A message addressed to one recipient."""
    method: DeliveryMethod
    recipient: str
    body: str
    subject: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class DeliveryResult:
    """Result of a delivery attempt."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class Notifier(ABC):
    """
    Abstract delivery channel.

    Implementations report failure in the result rather than raising, so
    the caller decides how a failed delivery maps to a response.
    """

    name: str = "base"

    @abstractmethod
    async def send(self, message: Notification) -> DeliveryResult:
        """Deliver a message."""

    async def close(self) -> None:
        """Release any held connections."""
