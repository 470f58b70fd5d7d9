"""
Twilio SMS Notifier
===================
Delivers SMS messages through the Twilio REST API.
"""

import re
from typing import Optional

import httpx
import structlog

from .base import DeliveryMethod, DeliveryResult, Notification, Notifier
from .templates import SMS_MAX_LENGTH

logger = structlog.get_logger(__name__)


def format_phone_number(phone: str) -> str:
    """Normalize to E.164, assuming a US number when no country code is given."""
    if phone.startswith("+"):
        return phone
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


class TwilioSMSNotifier(Notifier):
    """
    SMS delivery via Twilio.

    Only ``sms`` notifications are accepted. Bodies longer than one segment
    are truncated.
    """

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            account_sid: Twilio account SID ("ACxxx")
            auth_token: Twilio auth token
            from_number: Sender number, unless a messaging service is used
            messaging_service_sid: Messaging service SID ("MGxxx")
            client: Pre-built HTTP client, mainly for tests
        """
        if not from_number and not messaging_service_sid:
            raise ValueError("from_number or messaging_service_sid is required")
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.base_url = f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}"
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=(self.account_sid, self.auth_token),
                timeout=30.0,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, message: Notification) -> DeliveryResult:
        if message.method is not DeliveryMethod.SMS:
            return DeliveryResult(success=False, error="Twilio notifier only delivers SMS")

        body = message.body
        if len(body) > SMS_MAX_LENGTH:
            body = body[:SMS_MAX_LENGTH - 3] + "..."

        payload = {
            "To": format_phone_number(message.recipient),
            "Body": body,
        }
        if self.messaging_service_sid:
            payload["MessagingServiceSid"] = self.messaging_service_sid
        else:
            payload["From"] = self.from_number

        try:
            response = await self._get_client().post(
                f"{self.base_url}/Messages.json",
                data=payload,
            )
        except httpx.HTTPError as e:
            logger.error("Twilio send failed", error=str(e))
            return DeliveryResult(success=False, error="SMS delivery failed")

        if response.status_code == 201:
            data = response.json()
            logger.info("SMS sent", provider=self.name, message_id=data.get("sid"))
            return DeliveryResult(success=True, message_id=data.get("sid"))

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        logger.error(
            "Twilio rejected message",
            status_code=response.status_code,
            error_code=error_data.get("code"),
            error=error_data.get("message"),
        )
        return DeliveryResult(success=False, error=error_data.get("message", "SMS delivery failed"))
