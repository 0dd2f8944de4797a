"""Configuration for inbound GitHub webhook handling."""

from __future__ import annotations

import dataclasses as dc

from solforge.common.env import parse_bool, parse_positive_int, read_str

from .errors import WebhookConfigError


@dc.dataclass(frozen=True, slots=True)
class WebhookConfig:
    """Settings for webhook authentication and payload logging.

    Attributes
    ----------
    secret
        Shared secret configured on the GitHub webhook or App. Excluded from
        ``repr`` so it never reaches logs.
    verbose_logging
        When true, a bounded preview of each accepted payload is logged at
        DEBUG level.
    max_payload_log_bytes
        Upper bound on the payload preview. Default is 1024 bytes.

    """

    secret: str = dc.field(repr=False)
    verbose_logging: bool = False
    max_payload_log_bytes: int = 1024

    def __post_init__(self) -> None:
        """Reject empty secrets."""
        if not self.secret:
            raise WebhookConfigError.missing_secret()

    @classmethod
    def from_env(cls) -> WebhookConfig:
        """Create configuration from environment variables.

        Reads ``SOLFORGE_WEBHOOK_SECRET`` (required),
        ``SOLFORGE_VERBOSE_LOGGING`` and ``SOLFORGE_MAX_PAYLOAD_LOG_BYTES``.

        Raises
        ------
        WebhookConfigError
            If the secret is unset.
        ValueError
            If an optional variable cannot be parsed.

        """
        secret = read_str("SOLFORGE_WEBHOOK_SECRET")
        if secret is None:
            raise WebhookConfigError.missing_secret()
        return cls(
            secret=secret,
            verbose_logging=parse_bool("SOLFORGE_VERBOSE_LOGGING", default=False),
            max_payload_log_bytes=parse_positive_int(
                "SOLFORGE_MAX_PAYLOAD_LOG_BYTES", 1024
            ),
        )
