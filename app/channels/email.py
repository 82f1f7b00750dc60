"""E-mail channel backed by an HTTP transactional e-mail API."""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Iterable, Mapping
from email.utils import parseaddr
from typing import Any
from uuid import uuid4

from ..messaging.models import Channel, DeliveryResult, OutgoingMessage
from .base import ChannelAdapter, InboundMessage

logger = logging.getLogger(__name__)

_SCRIPT_OR_STYLE = re.compile(r"<(script|style)\b.*?</\1\s*>", re.I | re.S)
_LINE_BREAKS = re.compile(r"<\s*(br|/p|/div|/li|/h\d)\s*/?\s*>", re.I)
_TAGS = re.compile(r"<[^>]+>")
_SPACES = re.compile(r"[ \t]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")


def html_to_text(markup: str) -> str:
    """Basic HTML to plain-text conversion for inbound e-mails."""

    text = _SCRIPT_OR_STYLE.sub("", markup)
    text = _LINE_BREAKS.sub("\n", text)
    text = html.unescape(_TAGS.sub("", text))
    text = _SPACES.sub(" ", text)
    return _BLANK_LINES.sub("\n\n", text).strip()


class EmailAdapter(ChannelAdapter):
    channel = Channel.EMAIL

    def deliver(self, message: OutgoingMessage) -> DeliveryResult:
        brand = self.settings.brand_name
        escaped = html.escape(message.content).replace("\n", "<br>")
        html_body = (
            f"<div style=\"font-family: Arial, sans-serif; max-width: 600px;\">"
            f"<h2>{html.escape(brand)}</h2>"
            f"<p>{escaped}</p>"
            f"<hr><p style=\"color: #666; font-size: 12px;\">"
            f"Reply to this e-mail to continue the conversation.</p></div>"
        )
        return self.send_email(
            message.recipient,
            f"Reply from {brand}",
            html_body,
            f"{message.content}\n\n{brand}",
        )

    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> DeliveryResult:
        if not self.settings.email_configured:
            logger.info("E-mail API not configured; message to %s not sent: %s", to, subject)
            return DeliveryResult.delivered(f"dev_email_{uuid4().hex[:12]}")

        return self._post(
            self.settings.email_api_url,
            json={
                "from": self.settings.email_from,
                "to": [to],
                "subject": subject,
                "html": html_body,
                "text": text_body,
            },
            headers={"Authorization": f"Bearer {self.settings.email_api_key}"},
            extract_id=lambda payload: (payload or {}).get("id"),
        )

    def parse_incoming(self, payload: Mapping[str, Any]) -> Iterable[InboundMessage]:
        _, sender = parseaddr(str(payload.get("from") or ""))
        text = str(payload.get("text") or "")
        if not text.strip() and payload.get("html"):
            text = html_to_text(str(payload["html"]))
        if not sender or not text.strip():
            raise ValueError("Missing required fields: from and text or html")
        _, recipient = parseaddr(str(payload.get("to") or ""))
        return [
            InboundMessage(
                sender=sender,
                recipient=recipient,
                content=text,
                metadata={
                    "subject": payload.get("subject"),
                    "message_id": payload.get("message_id"),
                    "source": "email",
                },
            )
        ]
