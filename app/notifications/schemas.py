"""Pydantic models for business and customer notifications."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

MAX_NOTIFICATION_MESSAGE_LENGTH = 1000


class NotificationType(str, Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    IN_APP = "IN_APP"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationCreate(BaseModel):
    type: NotificationType
    title: str = Field(..., max_length=200)
    message: str = Field(..., max_length=MAX_NOTIFICATION_MESSAGE_LENGTH)
    recipient: str
    business_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Notification(NotificationCreate):
    id: str
    status: NotificationStatus = NotificationStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sent_at: Optional[datetime] = None
