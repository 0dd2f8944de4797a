"""Automatic on-chain payouts for claimed bounties."""

from __future__ import annotations

from .config import PaymentConfig, PayoutMode
from .dispatcher import InlinePayoutDispatcher, PayoutDispatcher, QueuePayoutDispatcher
from .errors import PaymentPreconditionError, RetryExhaustedError
from .executor import PaymentExecutor, PaymentOutcome, PayoutResult
from .factory import create_ledger_client, create_payment_executor
from .fingerprint import payment_fingerprint

__all__ = [
    "InlinePayoutDispatcher",
    "PaymentConfig",
    "PaymentExecutor",
    "PaymentOutcome",
    "PaymentPreconditionError",
    "PayoutDispatcher",
    "PayoutMode",
    "PayoutResult",
    "QueuePayoutDispatcher",
    "RetryExhaustedError",
    "create_ledger_client",
    "create_payment_executor",
    "payment_fingerprint",
]
