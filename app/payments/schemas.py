"""Pydantic models for marketplace payments."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from app.marketplace.schemas import ItemType


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class CreatePaymentRequest(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=64)
    item_type: ItemType
    customer_email: EmailStr
    customer_name: Optional[str] = Field(default=None, max_length=100)
    include_rim_service: bool = False
    payment_type: Literal["immediate", "link"] = "immediate"


class PaymentIntentResult(BaseModel):
    payment_id: str
    payment_intent_id: str
    client_secret: str
    amount_cents: int
    currency: str
    status: str


class PaymentLinkResult(BaseModel):
    payment_id: str
    payment_link_id: str
    url: str
    amount_cents: int
    currency: str


class Payment(BaseModel):
    id: str
    business_id: str
    item_id: str
    item_type: ItemType
    amount: float
    currency: str = "USD"
    status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str = "STRIPE"
    stripe_payment_intent_id: Optional[str] = None
    stripe_payment_link_id: Optional[str] = None
    payment_link_url: Optional[str] = None
    includes_rim_service: bool = False
    rim_service_price: float = 0.0
    customer_email: str
    customer_name: Optional[str] = None
    receipt_sent: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    paid_at: Optional[datetime] = None

    @property
    def stripe_id(self) -> Optional[str]:
        return self.stripe_payment_intent_id or self.stripe_payment_link_id
