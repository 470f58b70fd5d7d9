"""
Notifications
=============
Out-of-band delivery of one-time codes and setup links.
"""

from .base import DeliveryMethod, Notification, DeliveryResult, Notifier
from .templates import (
    render_otp_message,
    render_invitation_message,
    build_otp_notification,
    SMS_MAX_LENGTH,
)
from .logging_notifier import LoggingNotifier
from .routing import RoutingNotifier
from .twilio import TwilioSMSNotifier, format_phone_number

__all__ = [
    # Base
    "DeliveryMethod",
    "Notification",
    "DeliveryResult",
    "Notifier",
    # Templates
    "render_otp_message",
    "render_invitation_message",
    "build_otp_notification",
    "SMS_MAX_LENGTH",
    # Backends
    "LoggingNotifier",
    "RoutingNotifier",
    "TwilioSMSNotifier",
    "format_phone_number",
]
