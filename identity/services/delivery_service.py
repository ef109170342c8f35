"""
Verification code delivery.

Sends codes by email (SendGrid v3 API), SMS (Twilio) or chat (Twilio
WhatsApp). The authentication core never calls this; front ends hand it the
CodeHandle returned by a pending login or a verification request.
"""

import logging
from typing import Optional

import httpx
from twilio.rest import Client

from ..auth.password import mask_destination
from ..config import DeliveryConfig
from ..models import CodeHandle

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class DeliveryService:
    """Service for delivering verification codes out of band."""

    def __init__(self, config: Optional[DeliveryConfig] = None, http_client: Optional[httpx.Client] = None):
        self.config = config or DeliveryConfig()
        self._http = http_client
        self._client = None

        if self.config.twilio_account_sid and self.config.twilio_auth_token:
            try:
                self._client = Client(self.config.twilio_account_sid, self.config.twilio_auth_token)
                logger.info("Twilio delivery initialized")
            except Exception as e:
                logger.error(f"Failed to initialize Twilio: {e}")

    def is_configured(self, channel: str) -> bool:
        """Check if a channel has everything it needs to send."""
        if channel == "email":
            return bool(self.config.sendgrid_api_key and self.config.sendgrid_from_email)
        if channel == "sms":
            return self._client is not None and bool(self.config.twilio_phone_number)
        if channel == "chat":
            return self._client is not None and bool(self.config.twilio_whatsapp_number)
        return False

    @staticmethod
    def format_message(handle: CodeHandle) -> str:
        return f"Your verification code is {handle.code}. Do not share it with anyone."

    def deliver(self, handle: CodeHandle) -> dict:
        """
        Deliver a code to the destination recorded on its handle.

        Returns:
            Dict with `delivered`, `channel` and the masked destination,
            plus a provider id or an error message
        """
        masked = mask_destination(handle.destination or "")
        result = {"delivered": False, "channel": handle.channel, "destination": masked}

        if not handle.destination:
            result["error"] = "No destination"
            return result

        if not self.is_configured(handle.channel):
            logger.warning(f"{handle.channel} delivery not configured, code for {masked} not sent")
            result["error"] = f"{handle.channel} delivery not configured"
            return result

        try:
            if handle.channel == "email":
                result["id"] = self._send_email(handle)
            else:
                result["id"] = self._send_twilio(handle)
            result["delivered"] = True
            logger.info(f"Verification code sent via {handle.channel} to {masked}")
        except Exception as e:
            logger.error(f"{handle.channel} delivery failed to {masked}: {e}")
            result["error"] = str(e)

        return result

    def _send_twilio(self, handle: CodeHandle) -> str:
        if handle.channel == "chat":
            from_ = f"whatsapp:{self.config.twilio_whatsapp_number}"
            to = f"whatsapp:{handle.destination}"
        else:
            from_ = self.config.twilio_phone_number
            to = handle.destination

        message = self._client.messages.create(
            body=self.format_message(handle),
            from_=from_,
            to=to
        )
        return message.sid

    def _send_email(self, handle: CodeHandle) -> Optional[str]:
        payload = {
            "personalizations": [{"to": [{"email": handle.destination}]}],
            "from": {"email": self.config.sendgrid_from_email},
            "subject": "Your verification code",
            "content": [{"type": "text/plain", "value": self.format_message(handle)}],
        }
        headers = {
            "Authorization": f"Bearer {self.config.sendgrid_api_key}",
            "Content-Type": "application/json",
        }

        if self._http is not None:
            response = self._http.post(SENDGRID_URL, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=10.0) as client:
                response = client.post(SENDGRID_URL, json=payload, headers=headers)

        response.raise_for_status()
        return response.headers.get("X-Message-Id")
