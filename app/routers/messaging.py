"""Customer inquiries and the business conversation inbox."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..core.container import ServiceContainer, get_services
from ..messaging import (
    Channel,
    Conversation,
    ConversationNotFoundError,
    ConversationStatus,
    DeliveryFailedError,
    InvalidMessageError,
    InvalidTransitionError,
    MessageRouter,
    OutgoingMessage,
)
from ..messaging.models import MAX_MESSAGE_LENGTH, Message
from ..security.auth import Actor, require_role
from ..security.events import Severity, log_security_event
from ..security.ip_reputation import ViolationType
from ..security.throttling import get_client_ip, limiter
from ..security.validation import (
    contains_suspicious_patterns,
    is_valid_email,
    is_valid_phone_number,
    sanitize_string,
)

router = APIRouter(tags=["messaging"])

logger = logging.getLogger(__name__)

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
ViewerDep = Annotated[Actor, Depends(require_role("viewer"))]
OperatorDep = Annotated[Actor, Depends(require_role("operator"))]


class InquiryRequest(BaseModel):
    customer_identifier: str = Field(..., min_length=1, max_length=254)
    channel: Channel
    message: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1, max_length=100)
    inquiry_type: Optional[str] = Field(default=None, max_length=50)
    listing_id: Optional[str] = Field(default=None, max_length=64)
    business_id: Optional[str] = Field(default=None, max_length=64)


class InquiryResponse(BaseModel):
    success: bool = True
    conversation_id: str
    message_id: str
    channel: Channel
    acknowledgment: str
    estimated_response_time: str


class ConversationSummary(BaseModel):
    id: str
    channel: Channel
    customer_identifier: str
    status: ConversationStatus
    message_count: int
    unread_count: int
    last_message: Optional[Message] = None
    last_message_at: datetime
    created_at: datetime


class ConversationList(BaseModel):
    conversations: List[ConversationSummary]
    total: int
    active_count: int


class ConversationDetail(BaseModel):
    id: str
    business_id: str
    channel: Channel
    customer_identifier: str
    status: ConversationStatus
    messages: List[Message]
    unread_count: int
    total_messages: int
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime


class ReplyRequest(BaseModel):
    content: str = Field(..., min_length=1)
    in_reply_to: Optional[str] = Field(default=None, max_length=64)


class ReplyResponse(BaseModel):
    success: bool = True
    message: OutgoingMessage
    delivered_at: datetime


class ConversationUpdate(BaseModel):
    action: Literal["close", "archive", "mark_read"]


def _acknowledgment(channel: Channel, name: str, inquiry_type: Optional[str], brand: str) -> str:
    topic = inquiry_type or "general"
    if channel is Channel.SMS:
        return f"Hi {name}! Thanks for your message about {topic}. {brand} will text you back shortly."
    if channel is Channel.EMAIL:
        return (
            f"Thank you {name} for reaching out! We've received your {topic} inquiry "
            "and will email you back within 1-2 hours."
        )
    return f"Message received, {name}! Check your notifications for a response from {brand}."


def _summary(conversation: Conversation) -> ConversationSummary:
    return ConversationSummary(
        id=conversation.id,
        channel=conversation.channel,
        customer_identifier=conversation.customer_identifier,
        status=conversation.status,
        message_count=len(conversation.messages),
        unread_count=conversation.unread_count,
        last_message=conversation.messages[-1] if conversation.messages else None,
        last_message_at=conversation.last_message_at,
        created_at=conversation.created_at,
    )


def _detail(conversation: Conversation) -> ConversationDetail:
    return ConversationDetail(
        id=conversation.id,
        business_id=conversation.business_id,
        channel=conversation.channel,
        customer_identifier=conversation.customer_identifier,
        status=conversation.status,
        messages=conversation.messages,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        last_message_at=conversation.last_message_at,
        unread_count=conversation.unread_count,
        total_messages=len(conversation.messages),
    )


def _reject_suspicious(request: Request, services: ServiceContainer, event: str, details: Dict[str, Any]) -> None:
    client_ip = get_client_ip(request)
    services.ip_reputation.report_violation(client_ip, ViolationType.SUSPICIOUS_INPUT)
    log_security_event(event, {**details, "ip": client_ip}, Severity.MEDIUM)
    raise HTTPException(status_code=400, detail="Message contains invalid content")


@contextmanager
def _service_context(services: ServiceContainer) -> Iterator[MessageRouter]:
    try:
        yield services.message_router
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidMessageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except DeliveryFailedError as exc:
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE if exc.retryable else status.HTTP_502_BAD_GATEWAY
        )
        raise HTTPException(
            status_code=code,
            detail={"error": "Reply could not be delivered", "reason": exc.result.error, "retryable": exc.retryable},
        ) from exc


@router.post("/api/messages/inquiry", response_model=InquiryResponse)
@limiter.limit("3/hour")
def customer_inquiry(
    request: Request,
    payload: InquiryRequest,
    services: ServicesDep,
) -> InquiryResponse:
    """Accept a customer message from the public contact form."""

    identifier = payload.customer_identifier.strip()
    if payload.channel is Channel.SMS and not is_valid_phone_number(identifier):
        raise HTTPException(status_code=400, detail="Invalid phone number format")
    if payload.channel is Channel.EMAIL and not is_valid_email(identifier):
        raise HTTPException(status_code=400, detail="Invalid email address format")
    if not identifier:
        raise HTTPException(status_code=400, detail="Customer identifier is required")

    message = payload.message
    if not message.strip():
        raise HTTPException(status_code=400, detail="Message content is required")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=400, detail=f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"
        )
    if contains_suspicious_patterns(message) or contains_suspicious_patterns(payload.customer_name):
        _reject_suspicious(
            request,
            services,
            "SUSPICIOUS_CUSTOMER_MESSAGE",
            {"channel": payload.channel.value, "message_preview": message[:100]},
        )

    customer_name = sanitize_string(payload.customer_name, max_length=100)
    with _service_context(services) as svc:
        incoming = svc.handle_incoming(
            identifier,
            message,
            payload.channel,
            business_id=payload.business_id,
            metadata={
                "customer_name": customer_name,
                "inquiry_type": payload.inquiry_type,
                "listing_id": payload.listing_id,
                "source": "customer_form",
                "client_ip": get_client_ip(request),
            },
        )

    return InquiryResponse(
        conversation_id=incoming.conversation_id,
        message_id=incoming.id,
        channel=payload.channel,
        acknowledgment=_acknowledgment(
            payload.channel, customer_name, payload.inquiry_type, services.settings.brand_name
        ),
        estimated_response_time="30 minutes" if payload.channel is Channel.SMS else "1-2 hours",
    )


@router.get("/api/conversations", response_model=ConversationList)
def list_conversations(
    services: ServicesDep,
    actor: ViewerDep,
    status_filter: Optional[ConversationStatus] = Query(default=None, alias="status"),
) -> ConversationList:
    with _service_context(services) as svc:
        conversations = svc.list_conversations(actor.business_id, status_filter)
    summaries = [_summary(c) for c in conversations]
    return ConversationList(
        conversations=summaries,
        total=len(summaries),
        active_count=sum(1 for c in summaries if c.status is ConversationStatus.ACTIVE),
    )


@router.get("/api/conversations/{conversation_id}", response_model=ConversationDetail)
def get_conversation(
    conversation_id: str, services: ServicesDep, actor: ViewerDep
) -> ConversationDetail:
    with _service_context(services) as svc:
        return _detail(svc.get_conversation(conversation_id, business_id=actor.business_id))


@router.post("/api/conversations/{conversation_id}/reply", response_model=ReplyResponse)
def reply(
    conversation_id: str,
    payload: ReplyRequest,
    request: Request,
    services: ServicesDep,
    actor: OperatorDep,
) -> ReplyResponse:
    """Send a business reply through the conversation's channel."""

    if len(payload.content) > MAX_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=400, detail=f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"
        )
    if contains_suspicious_patterns(payload.content):
        _reject_suspicious(
            request,
            services,
            "SUSPICIOUS_REPLY_CONTENT",
            {"user_id": actor.user_id, "conversation_id": conversation_id},
        )

    with _service_context(services) as svc:
        message = svc.send_reply(
            conversation_id,
            payload.content,
            actor.user_id,
            payload.in_reply_to,
            business_id=actor.business_id,
        )
    return ReplyResponse(message=message, delivered_at=message.timestamp)


@router.patch("/api/conversations/{conversation_id}", response_model=ConversationDetail)
def update_conversation(
    conversation_id: str,
    payload: ConversationUpdate,
    services: ServicesDep,
    actor: OperatorDep,
) -> ConversationDetail:
    with _service_context(services) as svc:
        if payload.action == "close":
            conversation = svc.close_conversation(conversation_id, business_id=actor.business_id)
        elif payload.action == "archive":
            conversation = svc.archive_conversation(conversation_id, business_id=actor.business_id)
        else:
            conversation = svc.mark_read(conversation_id, business_id=actor.business_id)
    logger.info("Conversation %s: %s by %s", conversation_id, payload.action, actor.user_id)
    return _detail(conversation)
