"""Checkout and Stripe webhook routes."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Annotated, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..core.container import ServiceContainer, get_services
from ..marketplace import ListingNotFoundError, YardSaleItemNotFoundError
from ..payments import (
    CreatePaymentRequest,
    Payment,
    PaymentNotFoundError,
    PaymentProcessor,
    PaymentProviderError,
    PaymentStatus,
    WebhookVerificationError,
)
from ..payments.schemas import PaymentIntentResult, PaymentLinkResult
from ..security.auth import Actor, require_role
from ..security.validation import InputValidationError

router = APIRouter(tags=["payments"])

logger = logging.getLogger(__name__)

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
ViewerDep = Annotated[Actor, Depends(require_role("viewer"))]


class PaymentList(BaseModel):
    payments: list[Payment]
    total: int
    paid_count: int
    revenue: float


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str
    timestamp: datetime


@contextmanager
def _service_context(services: ServiceContainer) -> Iterator[PaymentProcessor]:
    try:
        yield services.payments
    except InputValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (ListingNotFoundError, YardSaleItemNotFoundError, PaymentNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PaymentProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post(
    "/api/payments/intent",
    response_model=Union[PaymentIntentResult, PaymentLinkResult],
)
def create_payment(
    payload: CreatePaymentRequest, services: ServicesDep
) -> Union[PaymentIntentResult, PaymentLinkResult]:
    """Start checkout for a listing or yard-sale item.

    ``payment_type="link"`` returns a hosted Stripe payment link instead of
    a client secret for an embedded form.
    """

    with _service_context(services) as svc:
        if payload.payment_type == "link":
            return svc.create_payment_link(payload)
        return svc.create_payment_intent(payload)


@router.get("/api/payments", response_model=PaymentList)
def list_payments(
    services: ServicesDep,
    actor: ViewerDep,
    status_filter: Optional[PaymentStatus] = Query(default=None, alias="status"),
) -> PaymentList:
    with _service_context(services) as svc:
        payments = svc.list_for_business(actor.business_id, status=status_filter)
        summary = svc.revenue_summary(actor.business_id)
    return PaymentList(
        payments=payments,
        total=len(payments),
        paid_count=summary["paid_count"],
        revenue=summary["revenue"],
    )


@router.get("/api/payments/{payment_id}", response_model=Payment)
def get_payment(payment_id: str, services: ServicesDep, actor: ViewerDep) -> Payment:
    with _service_context(services) as svc:
        return svc.get(payment_id, business_id=actor.business_id)


@router.post("/api/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(request: Request) -> WebhookAck:
    services = get_services(request)
    payload = await request.body()
    handler = services.stripe_webhooks
    try:
        event = handler.verify(payload, request.headers.get("Stripe-Signature"))
    except WebhookVerificationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    event_type = await run_in_threadpool(handler.dispatch, event)
    return WebhookAck(event_type=event_type, timestamp=datetime.now(timezone.utc))
