"""Webhook-to-payout orchestration and its observability events."""

from __future__ import annotations

from .observability import (
    ReconciliationEventLogger,
    ReconciliationEventType,
    categorize_error,
)
from .service import ProcessingOutcome, ProcessingStatus, WebhookReconciler

__all__ = [
    "ProcessingOutcome",
    "ProcessingStatus",
    "ReconciliationEventLogger",
    "ReconciliationEventType",
    "WebhookReconciler",
    "categorize_error",
]
