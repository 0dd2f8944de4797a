"""Webhook authentication and parsing errors."""

from __future__ import annotations

from solforge.errors import ErrorKind, SolForgeError


class WebhookAuthenticationError(SolForgeError):
    """Base class for signature failures; always answered with HTTP 401."""


class SignatureMissingError(WebhookAuthenticationError):
    """Raised when a delivery carries no signature header at all."""

    kind = ErrorKind.SIGNATURE_MISSING

    def __init__(self) -> None:
        """Attach a fixed message; header contents are never echoed."""
        super().__init__("webhook delivery has no signature header")


class SignatureMismatchError(WebhookAuthenticationError):
    """Raised when no supplied signature matches the raw body."""

    kind = ErrorKind.SIGNATURE_MISMATCH

    def __init__(self, algorithm: str) -> None:
        """Record which algorithm was checked."""
        self.algorithm = algorithm
        super().__init__(f"webhook {algorithm} signature does not match body")


class MalformedPayloadError(SolForgeError, ValueError):
    """Raised when an authenticated delivery cannot be decoded."""

    kind = ErrorKind.MALFORMED_PAYLOAD

    @classmethod
    def undecodable(cls, detail: str) -> MalformedPayloadError:
        """Return an error for bodies that are not the expected JSON shape."""
        return cls(f"webhook payload could not be decoded: {detail}")

    @classmethod
    def missing_header(cls, header: str) -> MalformedPayloadError:
        """Return an error for a required GitHub header that is absent."""
        return cls(f"webhook delivery is missing the {header} header")


class WebhookConfigError(SolForgeError):
    """Raised when webhook configuration is invalid."""

    kind = ErrorKind.CONFIGURATION

    @classmethod
    def missing_secret(cls) -> WebhookConfigError:
        """Return an error when no shared secret is configured."""
        return cls("SOLFORGE_WEBHOOK_SECRET is required to accept webhooks")
