"""Webhook ingestion routes for the SMS and e-mail channels."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..core.container import ServiceContainer, get_services
from ..messaging import Channel, InvalidMessageError
from ..security.events import Severity, log_security_event
from ..security.ip_reputation import ViolationType
from ..security.throttling import get_client_ip

router = APIRouter(tags=["webhooks"])

logger = logging.getLogger(__name__)

_TWIML_ACK = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    "<Response><Message>Thanks! We received your message and will reply shortly.</Message></Response>"
)


class InboundResult(BaseModel):
    processed_messages: int
    conversation_ids: list[str]


def _resolve_business_id(request: Request, services: ServiceContainer) -> str:
    candidate = request.query_params.get("business_id")
    return candidate or services.settings.default_business_id


def _ingest(
    services: ServiceContainer,
    channel: Channel,
    payload: dict[str, Any],
    business_id: str,
) -> InboundResult:
    adapter = services.adapters[channel]
    try:
        inbound = list(adapter.parse_incoming(payload))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    conversation_ids: list[str] = []
    for item in inbound:
        try:
            message = services.message_router.handle_incoming(
                item.sender,
                item.content,
                channel,
                business_id=business_id,
                metadata=item.metadata,
                recipient=item.recipient or None,
            )
        except InvalidMessageError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        conversation_ids.append(message.conversation_id)
    return InboundResult(processed_messages=len(conversation_ids), conversation_ids=conversation_ids)


@router.post("/api/webhooks/twilio")
async def twilio_webhook(request: Request) -> Response:
    """Receive an SMS forwarded by Twilio and answer with TwiML."""

    services = get_services(request)
    form = await request.form()
    params = {key: value for key, value in form.items() if isinstance(value, str)}

    adapter = services.adapters[Channel.SMS]
    if not adapter.verify_signature(str(request.url), params, request.headers):
        client_ip = get_client_ip(request)
        services.ip_reputation.report_violation(client_ip, ViolationType.MALICIOUS_REQUEST)
        log_security_event(
            "TWILIO_WEBHOOK_INVALID_SIGNATURE", {"ip": client_ip}, Severity.HIGH
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    result = await run_in_threadpool(
        _ingest, services, Channel.SMS, params, _resolve_business_id(request, services)
    )
    logger.info("Twilio webhook stored %d message(s)", result.processed_messages)
    return Response(content=_TWIML_ACK, media_type="application/xml")


@router.post("/api/webhooks/email", response_model=InboundResult)
async def email_webhook(request: Request) -> InboundResult:
    """Receive an inbound e-mail parsed by the e-mail provider."""

    services = get_services(request)
    body = await request.body()
    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload: expected an object")

    adapter = services.adapters[Channel.EMAIL]
    if not adapter.verify_signature(str(request.url), payload, request.headers):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    return await run_in_threadpool(
        _ingest, services, Channel.EMAIL, payload, _resolve_business_id(request, services)
    )
