"""Aggregated figures for the business dashboard."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..core.container import ServiceContainer, get_services
from ..messaging import ConversationStatus
from ..notifications.schemas import NotificationStatus
from ..security.auth import Actor, require_role

router = APIRouter(tags=["dashboard"])

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
ViewerDep = Annotated[Actor, Depends(require_role("viewer"))]


class DashboardStats(BaseModel):
    listings: dict[str, int]
    active_yard_sale_items: int
    active_conversations: int
    unread_messages: int
    pending_notifications: int
    paid_payments: int
    revenue: float


@router.get("/api/dashboard/stats", response_model=DashboardStats)
def dashboard_stats(services: ServicesDep, actor: ViewerDep) -> DashboardStats:
    business_id = actor.business_id
    active = services.message_router.list_conversations(business_id, ConversationStatus.ACTIVE)
    notifications = services.notifications.counts_by_status(business_id)
    revenue = services.payments.revenue_summary(business_id)
    return DashboardStats(
        listings=services.listings.count_by_status(business_id),
        active_yard_sale_items=services.yard_sales.count_active(business_id),
        active_conversations=len(active),
        unread_messages=sum(c.unread_count for c in active),
        pending_notifications=notifications[NotificationStatus.PENDING.value],
        paid_payments=revenue["paid_count"],
        revenue=revenue["revenue"],
    )
