"""Storage for payment records."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Protocol

from . import schemas


class PaymentRepository(Protocol):
    def add(self, payment: schemas.Payment) -> schemas.Payment: ...

    def get(self, payment_id: str) -> Optional[schemas.Payment]: ...

    def get_by_stripe_id(self, stripe_id: str) -> Optional[schemas.Payment]: ...

    def update(self, payment_id: str, changes: Dict[str, Any]) -> schemas.Payment: ...

    def list_for_business(
        self, business_id: str, *, status: Optional[schemas.PaymentStatus] = None
    ) -> List[schemas.Payment]: ...


class InMemoryPaymentRepository:
    def __init__(self) -> None:
        self._payments: Dict[str, schemas.Payment] = {}
        self._lock = threading.Lock()

    def add(self, payment: schemas.Payment) -> schemas.Payment:
        with self._lock:
            self._payments[payment.id] = payment.model_copy(deep=True)
        return payment.model_copy(deep=True)

    def get(self, payment_id: str) -> Optional[schemas.Payment]:
        with self._lock:
            payment = self._payments.get(payment_id)
            return payment.model_copy(deep=True) if payment else None

    def get_by_stripe_id(self, stripe_id: str) -> Optional[schemas.Payment]:
        with self._lock:
            for payment in self._payments.values():
                if stripe_id in (payment.stripe_payment_intent_id, payment.stripe_payment_link_id):
                    return payment.model_copy(deep=True)
        return None

    def update(self, payment_id: str, changes: Dict[str, Any]) -> schemas.Payment:
        with self._lock:
            payment = self._payments.get(payment_id)
            if payment is None:
                raise KeyError(payment_id)
            updated = payment.model_copy(update=changes, deep=True)
            self._payments[payment_id] = updated
            return updated.model_copy(deep=True)

    def list_for_business(
        self, business_id: str, *, status: Optional[schemas.PaymentStatus] = None
    ) -> List[schemas.Payment]:
        with self._lock:
            payments = [
                p.model_copy(deep=True)
                for p in self._payments.values()
                if p.business_id == business_id and (status is None or p.status is status)
            ]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments
