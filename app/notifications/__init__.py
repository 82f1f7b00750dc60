"""Notification records for businesses and customers."""

from . import schemas
from .repository import InMemoryNotificationRepository, NotificationRepository
from .service import Mailer, NotificationService, business_recipient

__all__ = [
    "InMemoryNotificationRepository",
    "Mailer",
    "NotificationRepository",
    "NotificationService",
    "business_recipient",
    "schemas",
]
