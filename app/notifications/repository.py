"""Notification persistence."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol
from uuid import uuid4

from . import schemas


class NotificationRepository(Protocol):
    def add(self, payload: schemas.NotificationCreate) -> schemas.Notification: ...

    def get(self, notification_id: str) -> Optional[schemas.Notification]: ...

    def update_status(
        self,
        notification_id: str,
        status: schemas.NotificationStatus,
        *,
        error: Optional[str] = None,
    ) -> schemas.Notification: ...

    def list_for_business(
        self,
        business_id: str,
        *,
        status: Optional[schemas.NotificationStatus] = None,
        limit: int = 50,
    ) -> List[schemas.Notification]: ...


class InMemoryNotificationRepository:
    def __init__(self) -> None:
        self._notifications: Dict[str, schemas.Notification] = {}
        self._lock = threading.Lock()

    def add(self, payload: schemas.NotificationCreate) -> schemas.Notification:
        notification = schemas.Notification(id=uuid4().hex, **payload.model_dump())
        with self._lock:
            self._notifications[notification.id] = notification
        return notification.model_copy(deep=True)

    def get(self, notification_id: str) -> Optional[schemas.Notification]:
        with self._lock:
            notification = self._notifications.get(notification_id)
            return notification.model_copy(deep=True) if notification else None

    def update_status(
        self,
        notification_id: str,
        status: schemas.NotificationStatus,
        *,
        error: Optional[str] = None,
    ) -> schemas.Notification:
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None:
                raise KeyError(f"Notification {notification_id} not found")
            notification.status = status
            notification.error = error
            if status is schemas.NotificationStatus.SENT:
                notification.sent_at = datetime.now(timezone.utc)
            return notification.model_copy(deep=True)

    def _newest_first(self, items: List[schemas.Notification], limit: int):
        items.sort(key=lambda n: n.created_at, reverse=True)
        return [n.model_copy(deep=True) for n in items[:limit]]

    def list_for_business(
        self,
        business_id: str,
        *,
        status: Optional[schemas.NotificationStatus] = None,
        limit: int = 50,
    ) -> List[schemas.Notification]:
        with self._lock:
            items = [
                n
                for n in self._notifications.values()
                if n.business_id == business_id and (status is None or n.status is status)
            ]
            return self._newest_first(items, limit)
