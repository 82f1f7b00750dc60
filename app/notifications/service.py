"""Business-side notifications and transactional e-mail bookkeeping."""

from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from app.messaging.models import DeliveryResult

from . import schemas
from .repository import NotificationRepository

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> DeliveryResult: ...


def business_recipient(business_id: str) -> str:
    """Recipient key of the in-app feed shown on a business dashboard."""

    return f"business:{business_id}"


def _truncate(text: str, limit: int = schemas.MAX_NOTIFICATION_MESSAGE_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class NotificationService:
    """Create notification records and deliver e-mail copies.

    In-app notifications stay ``PENDING`` until the dashboard consumes them.
    E-mails are sent immediately and their record reflects the outcome.
    """

    def __init__(
        self,
        repository: NotificationRepository,
        *,
        mailer: Optional[Mailer] = None,
        business_email: Optional[str] = None,
    ) -> None:
        self.repository = repository
        self.mailer = mailer
        self.business_email = business_email

    def create(self, payload: schemas.NotificationCreate) -> schemas.Notification:
        return self.repository.add(payload)

    def notify_business(
        self,
        business_id: str,
        *,
        title: str,
        message: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> schemas.Notification:
        """Add an in-app entry for ``business_id`` and e-mail the business contact."""

        notification = self.repository.add(
            schemas.NotificationCreate(
                type=schemas.NotificationType.IN_APP,
                title=title,
                message=_truncate(message),
                recipient=business_recipient(business_id),
                business_id=business_id,
                metadata=dict(metadata or {}),
            )
        )
        if self.business_email and self.mailer is not None:
            self.send_email(
                self.business_email,
                subject=title,
                html_body=f"<h2>{html.escape(title)}</h2><p>{html.escape(message)}</p>",
                text_body=message,
                business_id=business_id,
                metadata=metadata,
            )
        return notification

    def send_email(
        self,
        to: str,
        *,
        subject: str,
        html_body: str,
        text_body: str,
        business_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> schemas.Notification:
        """Send an e-mail and record it as an ``EMAIL`` notification."""

        record = self.repository.add(
            schemas.NotificationCreate(
                type=schemas.NotificationType.EMAIL,
                title=subject[:200],
                message=_truncate(text_body),
                recipient=to,
                business_id=business_id,
                metadata=dict(metadata or {}),
            )
        )
        if self.mailer is None:
            return self.repository.update_status(
                record.id, schemas.NotificationStatus.FAILED, error="No mailer configured"
            )
        result = self.mailer.send_email(to, subject, html_body, text_body)
        if result.ok:
            return self.repository.update_status(record.id, schemas.NotificationStatus.SENT)
        logger.warning("E-mail to %s failed: %s", to, result.error)
        return self.repository.update_status(
            record.id, schemas.NotificationStatus.FAILED, error=result.error
        )

    def list_for_business(
        self,
        business_id: str,
        *,
        status: Optional[schemas.NotificationStatus] = None,
        limit: int = 50,
    ) -> List[schemas.Notification]:
        return self.repository.list_for_business(business_id, status=status, limit=limit)

    def counts_by_status(self, business_id: str) -> Dict[str, int]:
        counts = {status.value: 0 for status in schemas.NotificationStatus}
        for notification in self.repository.list_for_business(business_id, limit=10_000):
            counts[notification.status.value] += 1
        return counts
