"""
Logging Notifier
================
Records messages instead of delivering them; for development and tests.
"""

import uuid
from typing import List, Optional

import structlog

from .base import DeliveryResult, Notification, Notifier

logger = structlog.get_logger(__name__)


class LoggingNotifier(Notifier):
    """Keeps every message in ``sent`` and logs its metadata."""

    name = "logging"

    def __init__(self, fail_with: Optional[str] = None):
        """
        Args:
            fail_with: When set, every send fails with this error
        """
        self.sent: List[Notification] = []
        self.fail_with = fail_with

    async def send(self, message: Notification) -> DeliveryResult:
        if self.fail_with:
            logger.warning("Notification not delivered", method=message.method.value, error=self.fail_with)
            return DeliveryResult(success=False, error=self.fail_with)

        self.sent.append(message)
        message_id = str(uuid.uuid4())
        # Body and code stay out of the log
        logger.info(
            "Notification recorded",
            method=message.method.value,
            recipient=message.recipient,
            subject=message.subject,
            message_id=message_id,
        )
        return DeliveryResult(success=True, message_id=message_id)

    @property
    def last(self) -> Optional[Notification]:
        return self.sent[-1] if self.sent else None
