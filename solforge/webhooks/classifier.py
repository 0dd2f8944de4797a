"""Turn authenticated webhook envelopes into typed domain events."""

from __future__ import annotations

import typing as typ

from .envelope import DELIVERY_HEADER, EVENT_HEADER
from .errors import MalformedPayloadError
from .events import DomainEvent, DuplicateDelivery, parse_event

if typ.TYPE_CHECKING:
    from .envelope import WebhookEnvelope


class DeliveryLookup(typ.Protocol):
    """Read side of the delivery ledger used for deduplication."""

    async def has_delivery(self, delivery_id: str) -> bool:
        """Return True when the delivery ID has already been recorded."""
        ...


class EventClassifier:
    """Classify a verified envelope, short-circuiting known deliveries.

    The classifier only reads the delivery ledger. Recording the delivery is
    left to the caller once correlation and any transition have completed,
    so a crash in between leads to a harmless redelivery.
    """

    def __init__(self, deliveries: DeliveryLookup) -> None:
        """Bind the classifier to a delivery ledger."""
        self._deliveries = deliveries

    async def classify(
        self, envelope: WebhookEnvelope
    ) -> DomainEvent | DuplicateDelivery:
        """Return the domain event for *envelope* or a duplicate marker.

        Raises
        ------
        MalformedPayloadError
            If the delivery or event header is missing, or the body cannot
            be decoded.

        """
        delivery_id = envelope.delivery_id
        if not delivery_id:
            raise MalformedPayloadError.missing_header(DELIVERY_HEADER)
        event_name = envelope.event_name
        if not event_name:
            raise MalformedPayloadError.missing_header(EVENT_HEADER)

        if await self._deliveries.has_delivery(delivery_id):
            return DuplicateDelivery(delivery_id)

        return parse_event(event_name, delivery_id, envelope.body)
