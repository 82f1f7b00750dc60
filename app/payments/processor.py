"""Stripe-backed payment processing for marketplace items."""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

import stripe

from app.core.settings import MarketplaceSettings
from app.marketplace.schemas import ItemType, ListingStatus
from app.marketplace.service import (
    ListingNotFoundError,
    ListingService,
    YardSaleItemNotFoundError,
    YardSaleService,
)
from app.notifications.schemas import NotificationStatus
from app.notifications.service import NotificationService
from app.security.validation import InputValidationError, contains_suspicious_patterns, is_valid_price

from . import schemas
from .repository import InMemoryPaymentRepository, PaymentRepository

logger = logging.getLogger(__name__)

CURRENCY = "usd"


class PaymentNotFoundError(RuntimeError):
    """Raised when a payment record could not be located."""


class PaymentProviderError(RuntimeError):
    """Raised when Stripe rejects or fails a request."""


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _item_label(item_type: ItemType) -> str:
    return item_type.value.lower().replace("_", " ")


class PaymentProcessor:
    """Create Stripe payment intents and links and react to their outcome."""

    def __init__(
        self,
        settings: MarketplaceSettings,
        *,
        listings: ListingService,
        yard_sales: YardSaleService,
        notifications: NotificationService,
        repository: Optional[PaymentRepository] = None,
    ) -> None:
        self.settings = settings
        self.listings = listings
        self.yard_sales = yard_sales
        self.notifications = notifications
        self.repository = repository or InMemoryPaymentRepository()

    def _init_stripe(self) -> None:
        if not self.settings.stripe_secret_key:
            raise PaymentProviderError("Stripe is not configured")
        stripe.api_key = self.settings.stripe_secret_key

    # ------------------------------------------------------------------
    # Checkout

    def _price_item(
        self, request: schemas.CreatePaymentRequest
    ) -> Tuple[str, Decimal, Decimal, str]:
        """Return business id, item price, rim service price and title."""

        if contains_suspicious_patterns(request.item_id) or contains_suspicious_patterns(
            request.customer_name
        ):
            raise InputValidationError("Invalid payment request")

        rim_price = Decimal("0")
        if request.item_type is ItemType.TIRE:
            listing = self.listings.find(request.item_id)
            if listing is None or listing.status is not ListingStatus.PUBLISHED:
                raise ListingNotFoundError(f"Listing {request.item_id} not found")
            price = Decimal(str(listing.price))
            if request.include_rim_service:
                if not listing.rim_service_available or listing.rim_service_price is None:
                    raise InputValidationError("Rim service is not offered for this listing")
                rim_price = Decimal(str(listing.rim_service_price))
            business_id, title = listing.business_id, listing.title
        else:
            item = self.yard_sales.find(request.item_id)
            if item is None or not item.is_active:
                raise YardSaleItemNotFoundError(f"Yard-sale item {request.item_id} not found")
            if request.include_rim_service:
                raise InputValidationError("Rim service only applies to tires")
            price = Decimal(str(item.price))
            business_id, title = item.business_id, item.title

        if not is_valid_price(price) or not is_valid_price(price + rim_price):
            raise InputValidationError("Invalid item price")
        return business_id, price, rim_price, title

    def _metadata(
        self, request: schemas.CreatePaymentRequest, rim_price: Decimal
    ) -> Dict[str, str]:
        return {
            "item_id": request.item_id,
            "item_type": request.item_type.value,
            "customer_email": str(request.customer_email),
            "customer_name": request.customer_name or "",
            "includes_rim_service": str(request.include_rim_service).lower(),
            "rim_service_price": str(rim_price),
            "business_name": self.settings.brand_name,
        }

    def _record(
        self,
        request: schemas.CreatePaymentRequest,
        *,
        business_id: str,
        total: Decimal,
        rim_price: Decimal,
        **stripe_fields: Any,
    ) -> schemas.Payment:
        payment = schemas.Payment(
            id=f"pay_{uuid4().hex[:20]}",
            business_id=business_id,
            item_id=request.item_id,
            item_type=request.item_type,
            amount=float(total),
            currency=CURRENCY.upper(),
            includes_rim_service=request.include_rim_service,
            rim_service_price=float(rim_price),
            customer_email=str(request.customer_email),
            customer_name=request.customer_name,
            **stripe_fields,
        )
        return self.repository.add(payment)

    def create_payment_intent(
        self, request: schemas.CreatePaymentRequest
    ) -> schemas.PaymentIntentResult:
        business_id, price, rim_price, _ = self._price_item(request)
        total = price + rim_price
        amount_cents = to_cents(total)
        self._init_stripe()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=CURRENCY,
                automatic_payment_methods={"enabled": True},
                metadata=self._metadata(request, rim_price),
                description=f"Payment for {_item_label(request.item_type)} from {self.settings.brand_name}",
                receipt_email=str(request.customer_email),
            )
        except stripe.StripeError as exc:
            logger.error("Stripe rejected payment intent for %s: %s", request.item_id, exc)
            raise PaymentProviderError("Failed to create payment intent") from exc

        payment = self._record(
            request,
            business_id=business_id,
            total=total,
            rim_price=rim_price,
            stripe_payment_intent_id=intent["id"],
        )
        logger.info("Payment %s created for intent %s", payment.id, intent["id"])
        return schemas.PaymentIntentResult(
            payment_id=payment.id,
            payment_intent_id=intent["id"],
            client_secret=intent["client_secret"],
            amount_cents=amount_cents,
            currency=CURRENCY,
            status=intent["status"],
        )

    def create_payment_link(self, request: schemas.CreatePaymentRequest) -> schemas.PaymentLinkResult:
        business_id, price, rim_price, title = self._price_item(request)
        total = price + rim_price
        amount_cents = to_cents(total)
        metadata = self._metadata(request, rim_price)
        self._init_stripe()
        try:
            price_object = stripe.Price.create(
                currency=CURRENCY,
                unit_amount=amount_cents,
                product_data={
                    "name": f"{title} from {self.settings.brand_name}",
                    "metadata": {"item_id": request.item_id, "item_type": request.item_type.value},
                },
            )
            link = stripe.PaymentLink.create(
                line_items=[{"price": price_object["id"], "quantity": 1}],
                metadata=metadata,
                after_completion={
                    "type": "redirect",
                    "redirect": {
                        "url": f"{self.settings.app_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}"
                    },
                },
            )
        except stripe.StripeError as exc:
            logger.error("Stripe rejected payment link for %s: %s", request.item_id, exc)
            raise PaymentProviderError("Failed to create payment link") from exc

        payment = self._record(
            request,
            business_id=business_id,
            total=total,
            rim_price=rim_price,
            stripe_payment_link_id=link["id"],
            payment_link_url=link["url"],
        )
        logger.info("Payment %s created for link %s", payment.id, link["id"])
        return schemas.PaymentLinkResult(
            payment_id=payment.id,
            payment_link_id=link["id"],
            url=link["url"],
            amount_cents=amount_cents,
            currency=CURRENCY,
        )

    # ------------------------------------------------------------------
    # Outcomes

    def handle_payment_success(self, stripe_id: str) -> Optional[schemas.Payment]:
        payment = self.repository.get_by_stripe_id(stripe_id)
        if payment is None:
            logger.warning("Payment success for unknown Stripe id %s", stripe_id)
            return None
        if payment.status is schemas.PaymentStatus.PAID:
            return payment

        now = datetime.now(timezone.utc)
        payment = self.repository.update(
            payment.id,
            {"status": schemas.PaymentStatus.PAID, "paid_at": now, "updated_at": now},
        )
        receipt = self.notifications.send_email(
            payment.customer_email,
            subject=f"Receipt from {self.settings.brand_name} - Payment Confirmation",
            html_body=self.receipt_html(payment),
            text_body=self.receipt_text(payment),
            business_id=payment.business_id,
            metadata={"payment_id": payment.id},
        )
        payment = self.repository.update(
            payment.id, {"receipt_sent": receipt.status is NotificationStatus.SENT}
        )
        self.notifications.notify_business(
            payment.business_id,
            title="Payment Received",
            message=(
                f"New payment of ${payment.amount:.2f} received from {payment.customer_email} "
                f"for {_item_label(payment.item_type)}."
            ),
            metadata={
                "payment_id": payment.id,
                "stripe_id": stripe_id,
                "amount": payment.amount,
                "customer_email": payment.customer_email,
            },
        )
        logger.info("Payment %s completed", payment.id)
        return payment

    def _set_status(self, stripe_id: str, status: schemas.PaymentStatus) -> Optional[schemas.Payment]:
        payment = self.repository.get_by_stripe_id(stripe_id)
        if payment is None:
            logger.warning("Payment %s for unknown Stripe id %s", status.value.lower(), stripe_id)
            return None
        payment = self.repository.update(
            payment.id, {"status": status, "updated_at": datetime.now(timezone.utc)}
        )
        logger.info("Payment %s marked %s", payment.id, status.value)
        return payment

    def handle_payment_failure(self, stripe_id: str) -> Optional[schemas.Payment]:
        return self._set_status(stripe_id, schemas.PaymentStatus.FAILED)

    def handle_refund(self, stripe_id: str) -> Optional[schemas.Payment]:
        return self._set_status(stripe_id, schemas.PaymentStatus.REFUNDED)

    # ------------------------------------------------------------------
    # Queries

    def get(self, payment_id: str, *, business_id: str) -> schemas.Payment:
        payment = self.repository.get(payment_id)
        if payment is None or payment.business_id != business_id:
            raise PaymentNotFoundError(f"Payment {payment_id} not found")
        return payment

    def list_for_business(
        self, business_id: str, *, status: Optional[schemas.PaymentStatus] = None
    ) -> List[schemas.Payment]:
        return self.repository.list_for_business(business_id, status=status)

    def revenue_summary(self, business_id: str) -> Dict[str, Any]:
        paid = self.repository.list_for_business(business_id, status=schemas.PaymentStatus.PAID)
        total = sum((Decimal(str(p.amount)) for p in paid), Decimal("0"))
        return {"paid_count": len(paid), "revenue": float(total)}

    # ------------------------------------------------------------------
    # Receipts

    def receipt_html(self, payment: schemas.Payment) -> str:
        brand = html.escape(self.settings.brand_name)
        rim_row = ""
        if payment.includes_rim_service:
            rim_row = (
                "<tr><td>Rim Mounting Service:</td>"
                f"<td>${payment.rim_service_price:.2f}</td></tr>"
            )
        paid_at = (payment.paid_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")
        return (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            f"<title>Receipt from {brand}</title></head>"
            "<body style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
            f"<h1>{brand}</h1><h2>Payment Confirmed</h2>"
            "<p>Thank you for your payment! Your transaction has been processed successfully.</p>"
            "<table>"
            f"<tr><td>Receipt #:</td><td>{html.escape(payment.id)}</td></tr>"
            f"<tr><td>Date &amp; Time:</td><td>{paid_at}</td></tr>"
            f"<tr><td>Item:</td><td>{html.escape(_item_label(payment.item_type))}</td></tr>"
            f"{rim_row}"
            f"<tr><td>Total Amount:</td><td>${payment.amount:.2f}</td></tr>"
            "</table>"
            "<p>We'll contact you within 24 hours to arrange pickup or delivery.</p>"
            f"<p><a href=\"{html.escape(self.settings.app_url)}\">Visit Our Marketplace</a></p>"
            "</body></html>"
        )

    def receipt_text(self, payment: schemas.Payment) -> str:
        lines = [
            f"{self.settings.brand_name} - Payment Confirmed",
            f"Receipt #: {payment.id}",
            f"Item: {_item_label(payment.item_type)}",
        ]
        if payment.includes_rim_service:
            lines.append(f"Rim Mounting Service: ${payment.rim_service_price:.2f}")
        lines.append(f"Total Amount: ${payment.amount:.2f}")
        return "\n".join(lines)


__all__ = [
    "PaymentNotFoundError",
    "PaymentProcessor",
    "PaymentProviderError",
    "to_cents",
]
