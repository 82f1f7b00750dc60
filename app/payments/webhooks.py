"""Stripe webhook verification and event dispatch."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional

import stripe

from app.security.events import Severity, log_security_event

from .processor import PaymentProcessor

logger = logging.getLogger(__name__)


class WebhookVerificationError(ValueError):
    """Raised when a webhook payload or its signature is not acceptable."""


class StripeWebhookHandler:
    """Verify signed Stripe events and route them to the payment processor."""

    def __init__(self, processor: PaymentProcessor, *, webhook_secret: Optional[str]) -> None:
        self.processor = processor
        self.webhook_secret = webhook_secret
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], None]] = {
            "payment_intent.succeeded": self._on_intent_succeeded,
            "payment_intent.payment_failed": self._on_intent_failed,
            "payment_intent.canceled": self._on_intent_canceled,
            "checkout.session.completed": self._on_checkout_completed,
            "charge.refunded": self._on_charge_refunded,
            "payment_method.attached": self._on_informational,
            "invoice.payment_succeeded": self._on_informational,
            "invoice.payment_failed": self._on_invoice_failed,
        }

    @property
    def supported_events(self) -> list[str]:
        return sorted(self._handlers)

    def verify(self, payload: bytes, signature: Optional[str]) -> Mapping[str, Any]:
        if not signature:
            log_security_event("STRIPE_WEBHOOK_NO_SIGNATURE", {}, Severity.HIGH)
            raise WebhookVerificationError("No Stripe signature found")
        if not self.webhook_secret:
            log_security_event("STRIPE_WEBHOOK_NOT_CONFIGURED", {}, Severity.HIGH)
            raise WebhookVerificationError("Webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            log_security_event(
                "STRIPE_WEBHOOK_INVALID_SIGNATURE", {"error": str(exc)}, Severity.HIGH
            )
            raise WebhookVerificationError("Invalid signature") from exc

    def dispatch(self, event: Mapping[str, Any]) -> str:
        """Handle a verified event and return its type."""

        event_type = str(event["type"])
        data_object = event["data"]["object"]
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled Stripe event type: %s", event_type)
            return event_type
        logger.info("Stripe event %s for %s", event_type, data_object.get("id"))
        handler(data_object)
        return event_type

    def _on_intent_succeeded(self, intent: Mapping[str, Any]) -> None:
        self.processor.handle_payment_success(intent["id"])
        log_security_event(
            "PAYMENT_SUCCEEDED",
            {
                "payment_intent_id": intent["id"],
                "amount": intent.get("amount"),
                "currency": intent.get("currency"),
            },
            Severity.LOW,
        )

    def _on_intent_failed(self, intent: Mapping[str, Any]) -> None:
        self.processor.handle_payment_failure(intent["id"])
        last_error = intent.get("last_payment_error") or {}
        log_security_event(
            "PAYMENT_FAILED",
            {
                "payment_intent_id": intent["id"],
                "amount": intent.get("amount"),
                "currency": intent.get("currency"),
                "last_payment_error": last_error.get("message"),
            },
            Severity.MEDIUM,
        )

    def _on_intent_canceled(self, intent: Mapping[str, Any]) -> None:
        self.processor.handle_payment_failure(intent["id"])

    def _on_checkout_completed(self, session: Mapping[str, Any]) -> None:
        for key in ("payment_link", "payment_intent"):
            stripe_id = session.get(key)
            if isinstance(stripe_id, str) and self.processor.handle_payment_success(stripe_id):
                return
        logger.warning("Checkout session %s matched no payment", session.get("id"))

    def _on_charge_refunded(self, charge: Mapping[str, Any]) -> None:
        stripe_id = charge.get("payment_intent")
        if isinstance(stripe_id, str):
            self.processor.handle_refund(stripe_id)

    def _on_informational(self, data_object: Mapping[str, Any]) -> None:
        logger.info("Stripe object %s acknowledged", data_object.get("id"))

    def _on_invoice_failed(self, invoice: Mapping[str, Any]) -> None:
        log_security_event(
            "INVOICE_PAYMENT_FAILED",
            {
                "invoice_id": invoice.get("id"),
                "customer_email": invoice.get("customer_email"),
                "amount": invoice.get("amount_due"),
            },
            Severity.MEDIUM,
        )


__all__ = ["StripeWebhookHandler", "WebhookVerificationError"]
