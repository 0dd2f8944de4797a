"""Structured observability events for the reconciliation pipeline.

Every event is a single log line of the form ``[event.type] key=value ...``
emitted through femtologging, so log aggregators can filter on the bracketed
event type. Exceptions are mapped onto :class:`~solforge.errors.ErrorKind`
for alert routing.

Usage
-----
>>> events = ReconciliationEventLogger()
>>> events.log_payment_completed(bounty_id="b-1", signature="5x...", attempts=1)

"""

from __future__ import annotations

import enum
import typing as typ

import httpx
import msgspec
from sqlalchemy.exc import SQLAlchemyError

from solforge.errors import ErrorKind, SolForgeError
from solforge.logging import get_logger, log_debug, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from solforge.payments.errors import RetryExhaustedError

logger = get_logger(__name__)


class ReconciliationEventType(enum.StrEnum):
    """Structured log event types for webhook and payout handling."""

    WEBHOOK_ACCEPTED = "webhook.accepted"
    WEBHOOK_REJECTED = "webhook.rejected"
    WEBHOOK_DUPLICATE = "webhook.duplicate"
    WEBHOOK_PAYLOAD = "webhook.payload"
    BOUNTY_UNMATCHED = "bounty.unmatched"
    BOUNTY_AUTHOR_MISMATCH = "bounty.author_mismatch"
    BOUNTY_CLAIMED = "bounty.claimed"
    BOUNTY_CANCELLED = "bounty.cancelled"
    TRANSITION_SKIPPED = "bounty.transition.skipped"
    PAYMENT_DISPATCHED = "payment.dispatched"
    PAYMENT_ATTEMPT_STARTED = "payment.attempt.started"
    PAYMENT_ATTEMPT_FAILED = "payment.attempt.failed"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_RECOVERED = "payment.recovered"


_EXCEPTION_KIND_MAP: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (msgspec.MsgspecError, ErrorKind.MALFORMED_PAYLOAD),
    (httpx.HTTPError, ErrorKind.UPSTREAM),
    (SQLAlchemyError, ErrorKind.UPSTREAM),
    (TimeoutError, ErrorKind.CONFIRMATION_TIMEOUT),
)


def categorize_error(exc: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` used to route alerts for *exc*."""
    if isinstance(exc, SolForgeError):
        return exc.kind
    for exc_type, kind in _EXCEPTION_KIND_MAP:
        if isinstance(exc, exc_type):
            return kind
    return ErrorKind.UPSTREAM


class ReconciliationEventLogger:
    """Emit reconciliation events via femtologging."""

    def log_webhook_accepted(
        self, *, delivery_id: str, event_name: str, outcome: str
    ) -> None:
        """Log a verified delivery and what the pipeline did with it."""
        log_info(
            logger,
            "[%s] delivery_id=%s event=%s outcome=%s",
            ReconciliationEventType.WEBHOOK_ACCEPTED,
            delivery_id,
            event_name,
            outcome,
        )

    def log_webhook_rejected(
        self, *, delivery_id: str | None, error: BaseException
    ) -> None:
        """Log a delivery rejected before any state changed."""
        log_warning(
            logger,
            "[%s] delivery_id=%s error_kind=%s",
            ReconciliationEventType.WEBHOOK_REJECTED,
            delivery_id,
            categorize_error(error),
        )

    def log_webhook_duplicate(self, *, delivery_id: str) -> None:
        """Log a redelivery that was already processed."""
        log_info(
            logger,
            "[%s] delivery_id=%s",
            ReconciliationEventType.WEBHOOK_DUPLICATE,
            delivery_id,
        )

    def log_webhook_payload(self, *, delivery_id: str | None, preview: str) -> None:
        """Log a bounded payload preview when verbose logging is enabled."""
        log_debug(
            logger,
            "[%s] delivery_id=%s preview=%s",
            ReconciliationEventType.WEBHOOK_PAYLOAD,
            delivery_id,
            preview,
        )

    def log_unmatched(self, *, pr_url: str, detail: str) -> None:
        """Log a merged pull request with no payable bounty."""
        log_info(
            logger,
            "[%s] pr_url=%s detail=%s",
            ReconciliationEventType.BOUNTY_UNMATCHED,
            pr_url,
            detail,
        )

    def log_author_mismatch(
        self, *, bounty_id: str, pr_url: str, author_login: str | None
    ) -> None:
        """Log a merge whose author is not the recorded claimant."""
        log_warning(
            logger,
            "[%s] bounty_id=%s pr_url=%s author=%s",
            ReconciliationEventType.BOUNTY_AUTHOR_MISMATCH,
            bounty_id,
            pr_url,
            author_login,
        )

    def log_bounty_claimed(self, *, bounty_id: str, pr_url: str) -> None:
        """Log the ``submitted -> claimed`` transition."""
        log_info(
            logger,
            "[%s] bounty_id=%s pr_url=%s",
            ReconciliationEventType.BOUNTY_CLAIMED,
            bounty_id,
            pr_url,
        )

    def log_bounty_cancelled(self, *, bounty_id: str, reason: str) -> None:
        """Log a bounty cancelled by the pipeline."""
        log_info(
            logger,
            "[%s] bounty_id=%s reason=%s",
            ReconciliationEventType.BOUNTY_CANCELLED,
            bounty_id,
            reason,
        )

    def log_transition_skipped(self, *, bounty_id: str, error: BaseException) -> None:
        """Log an illegal or lost-race transition treated as a no-op."""
        log_info(
            logger,
            "[%s] bounty_id=%s reason=%s",
            ReconciliationEventType.TRANSITION_SKIPPED,
            bounty_id,
            error,
        )

    def log_payment_dispatched(self, *, bounty_id: str, mode: str) -> None:
        """Log a payout handed to the executor."""
        log_info(
            logger,
            "[%s] bounty_id=%s mode=%s",
            ReconciliationEventType.PAYMENT_DISPATCHED,
            bounty_id,
            mode,
        )

    def log_attempt_started(self, *, bounty_id: str, attempt_number: int) -> None:
        """Log the start of one payout attempt."""
        log_info(
            logger,
            "[%s] bounty_id=%s attempt=%d",
            ReconciliationEventType.PAYMENT_ATTEMPT_STARTED,
            bounty_id,
            attempt_number,
        )

    def log_attempt_failed(
        self, *, bounty_id: str, attempt_number: int, error: BaseException
    ) -> None:
        """Log a failed attempt with its error kind and message."""
        log_warning(
            logger,
            "[%s] bounty_id=%s attempt=%d error_kind=%s error_message=%s",
            ReconciliationEventType.PAYMENT_ATTEMPT_FAILED,
            bounty_id,
            attempt_number,
            categorize_error(error),
            str(error),
        )

    def log_payment_completed(
        self, *, bounty_id: str, signature: str, attempts: int
    ) -> None:
        """Log a confirmed payout."""
        log_info(
            logger,
            "[%s] bounty_id=%s signature=%s attempts=%d",
            ReconciliationEventType.PAYMENT_COMPLETED,
            bounty_id,
            signature,
            attempts,
        )

    def log_payment_failed(self, error: RetryExhaustedError) -> None:
        """Log a payout that exhausted its retries."""
        log_error(
            logger,
            "[%s] bounty_id=%s attempts=%d error_kind=%s last_error=%s",
            ReconciliationEventType.PAYMENT_FAILED,
            error.bounty_id,
            error.attempts,
            error.kind,
            error.last_error,
        )

    def log_payment_recovered(self, *, bounty_id: str, signature: str) -> None:
        """Log an earlier submission found confirmed during a retry or sweep."""
        log_info(
            logger,
            "[%s] bounty_id=%s signature=%s",
            ReconciliationEventType.PAYMENT_RECOVERED,
            bounty_id,
            signature,
        )


__all__ = [
    "ReconciliationEventLogger",
    "ReconciliationEventType",
    "categorize_error",
]
