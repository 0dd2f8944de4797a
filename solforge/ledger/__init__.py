"""Delivery and payment-attempt records used for idempotency."""

from __future__ import annotations

from .errors import AttemptConflictError, AttemptNotFoundError
from .storage import (
    AttemptStatus,
    DeliveryRecord,
    PaymentAttemptRecord,
    init_storage,
)
from .store import PaymentAttempt, ReconciliationLedger, SqlReconciliationLedger

__all__ = [
    "AttemptConflictError",
    "AttemptNotFoundError",
    "AttemptStatus",
    "DeliveryRecord",
    "PaymentAttempt",
    "PaymentAttemptRecord",
    "ReconciliationLedger",
    "SqlReconciliationLedger",
    "init_storage",
]
