"""Stripe payments for marketplace items."""

from .processor import PaymentNotFoundError, PaymentProcessor, PaymentProviderError
from .repository import InMemoryPaymentRepository, PaymentRepository
from .schemas import CreatePaymentRequest, Payment, PaymentStatus
from .webhooks import StripeWebhookHandler, WebhookVerificationError

__all__ = [
    "CreatePaymentRequest",
    "InMemoryPaymentRepository",
    "Payment",
    "PaymentNotFoundError",
    "PaymentProcessor",
    "PaymentProviderError",
    "PaymentRepository",
    "PaymentStatus",
    "StripeWebhookHandler",
    "WebhookVerificationError",
]
