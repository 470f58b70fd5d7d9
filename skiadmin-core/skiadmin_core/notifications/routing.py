"""
Routing Notifier
================
Sends each message through the channel registered for its delivery method.
"""

from typing import Dict, List

import structlog

from .base import DeliveryMethod, DeliveryResult, Notification, Notifier

logger = structlog.get_logger(__name__)


class RoutingNotifier(Notifier):
    """Dispatches by ``Notification.method``; unrouted methods fail."""

    name = "routing"

    def __init__(self, routes: Dict[DeliveryMethod, Notifier]):
        self.routes = dict(routes)

    async def send(self, message: Notification) -> DeliveryResult:
        notifier = self.routes.get(message.method)
        if notifier is None:
            logger.error("No delivery channel configured", method=message.method.value)
            return DeliveryResult(success=False, error=f"No channel configured for {message.method.value}")
        return await notifier.send(message)

    async def close(self) -> None:
        closed: List[Notifier] = []
        for notifier in self.routes.values():
            if any(notifier is seen for seen in closed):
                continue
            closed.append(notifier)
            await notifier.close()
