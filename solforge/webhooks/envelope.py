"""Transport-level representation of a webhook delivery."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import datetime as dt

from solforge.common.time import utcnow

EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"
SHA256_HEADER = "x-hub-signature-256"
SHA1_HEADER = "x-hub-signature"


@dc.dataclass(frozen=True, slots=True)
class WebhookEnvelope:
    """Raw HTTP delivery captured before any parsing.

    ``body`` holds the exact bytes read from the socket. Signatures are
    computed over these bytes only; the body is never re-serialised.
    """

    headers: cabc.Mapping[str, str]
    body: bytes
    received_at: dt.datetime = dc.field(default_factory=utcnow)

    @classmethod
    def from_request(
        cls,
        headers: cabc.Mapping[str, str],
        body: bytes,
        *,
        received_at: dt.datetime | None = None,
    ) -> WebhookEnvelope:
        """Build an envelope with lower-cased header names."""
        lowered = {name.lower(): value for name, value in headers.items()}
        return cls(
            headers=lowered,
            body=body,
            received_at=received_at or utcnow(),
        )

    def header(self, name: str) -> str | None:
        """Return a header value by case-insensitive name."""
        return self.headers.get(name.lower())

    @property
    def event_name(self) -> str | None:
        """Return the ``X-GitHub-Event`` header."""
        return self.header(EVENT_HEADER)

    @property
    def delivery_id(self) -> str | None:
        """Return the ``X-GitHub-Delivery`` header."""
        return self.header(DELIVERY_HEADER)
