"""SMS channel backed by the Twilio REST API."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import uuid4

from ..messaging.models import Channel, DeliveryResult, OutgoingMessage
from .base import ChannelAdapter, InboundMessage

logger = logging.getLogger(__name__)


def twilio_signature(auth_token: str, url: str, params: Mapping[str, Any]) -> str:
    """Compute the ``X-Twilio-Signature`` value for a form-encoded webhook."""

    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1)
    return base64.b64encode(digest.digest()).decode("ascii")


class SmsAdapter(ChannelAdapter):
    channel = Channel.SMS

    def deliver(self, message: OutgoingMessage) -> DeliveryResult:
        body = f"{self.settings.brand_name}: {message.content}"
        if not self.settings.twilio_configured:
            logger.info("Twilio not configured; SMS to %s not sent: %s", message.recipient, body)
            return DeliveryResult.delivered(f"dev_sms_{uuid4().hex[:12]}")

        sid = self.settings.twilio_account_sid
        return self._post(
            f"{self.settings.twilio_api_base}/Accounts/{sid}/Messages.json",
            data={
                "To": message.recipient,
                "From": self.settings.twilio_phone_number,
                "Body": body,
            },
            auth=(sid, self.settings.twilio_auth_token),
            extract_id=lambda payload: (payload or {}).get("sid"),
        )

    def verify_signature(
        self, url: str, params: Mapping[str, Any], headers: Mapping[str, str]
    ) -> bool:
        token = self.settings.twilio_auth_token
        if not token:
            return True
        received = headers.get("X-Twilio-Signature")
        if not received:
            return False
        return hmac.compare_digest(received, twilio_signature(token, url, params))

    def parse_incoming(self, payload: Mapping[str, Any]) -> Iterable[InboundMessage]:
        sender = str(payload.get("From") or "").strip()
        body = str(payload.get("Body") or "")
        if not sender or not body.strip():
            raise ValueError("Missing required fields: From and Body")
        return [
            InboundMessage(
                sender=sender,
                recipient=str(payload.get("To") or ""),
                content=body,
                metadata={
                    "message_sid": payload.get("MessageSid"),
                    "num_media": int(payload.get("NumMedia") or 0),
                    "source": "twilio",
                },
            )
        ]
