"""Business notification feed."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..core.container import ServiceContainer, get_services
from ..notifications.schemas import Notification, NotificationStatus
from ..security.auth import Actor, require_role

router = APIRouter(tags=["notifications"])

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
ViewerDep = Annotated[Actor, Depends(require_role("viewer"))]


class NotificationFeed(BaseModel):
    notifications: list[Notification]
    counts: dict[str, int]


@router.get("/api/notifications", response_model=NotificationFeed)
def list_notifications(
    services: ServicesDep,
    actor: ViewerDep,
    status_filter: Optional[NotificationStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
) -> NotificationFeed:
    svc = services.notifications
    return NotificationFeed(
        notifications=svc.list_for_business(actor.business_id, status=status_filter, limit=limit),
        counts=svc.counts_by_status(actor.business_id),
    )
