"""Inbound GitHub webhook authentication and classification."""

from __future__ import annotations

from .classifier import DeliveryLookup, EventClassifier
from .config import WebhookConfig
from .envelope import WebhookEnvelope
from .errors import (
    MalformedPayloadError,
    SignatureMismatchError,
    SignatureMissingError,
    WebhookAuthenticationError,
    WebhookConfigError,
)
from .events import (
    DomainEvent,
    DuplicateDelivery,
    IssueClosed,
    Ping,
    PullRequestClosed,
    PullRequestMerged,
    PullRequestOpened,
    Unhandled,
)
from .signature import SignatureAlgorithm, compute_signature, verify_signature

__all__ = [
    "DeliveryLookup",
    "DomainEvent",
    "DuplicateDelivery",
    "EventClassifier",
    "IssueClosed",
    "MalformedPayloadError",
    "Ping",
    "PullRequestClosed",
    "PullRequestMerged",
    "PullRequestOpened",
    "SignatureAlgorithm",
    "SignatureMismatchError",
    "SignatureMissingError",
    "Unhandled",
    "WebhookAuthenticationError",
    "WebhookConfig",
    "WebhookConfigError",
    "WebhookEnvelope",
    "compute_signature",
    "verify_signature",
]
