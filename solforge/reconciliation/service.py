"""Orchestrate a webhook delivery from raw bytes to a payout.

A delivery flows through signature verification, classification,
correlation and the claim state machine. When a merge moves a bounty to
``claimed`` the payout is handed to a :class:`PayoutDispatcher`. The
delivery ID is recorded only after that work finishes, so a crash part-way
leads to a redelivery that replays the same idempotent steps.

Usage
-----
>>> reconciler = WebhookReconciler(config, classifier=..., correlator=...,
...     state_machine=..., bounty_service=..., ledger=..., dispatcher=...)
>>> outcome = await reconciler.process(
...     WebhookEnvelope.from_request(request_headers, raw_body)
... )

"""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

from solforge.bounties.correlator import CorrelationResult
from solforge.bounties.errors import IllegalTransitionError
from solforge.bounties.models import BountyState, ClaimEvent, PaymentStatus
from solforge.logging import truncate_payload
from solforge.webhooks.errors import MalformedPayloadError, WebhookAuthenticationError
from solforge.webhooks.events import (
    DuplicateDelivery,
    IssueClosed,
    Ping,
    PullRequestMerged,
    event_label,
)
from solforge.webhooks.signature import verify_signature

from .observability import ReconciliationEventLogger

if typ.TYPE_CHECKING:
    from solforge.bounties.correlator import BountyCorrelator
    from solforge.bounties.models import Bounty
    from solforge.bounties.service import BountyService
    from solforge.bounties.state_machine import ClaimStateMachine
    from solforge.ledger.store import ReconciliationLedger
    from solforge.payments.dispatcher import PayoutDispatcher
    from solforge.payments.executor import PaymentOutcome
    from solforge.webhooks.classifier import EventClassifier
    from solforge.webhooks.config import WebhookConfig
    from solforge.webhooks.envelope import WebhookEnvelope
    from solforge.webhooks.events import DomainEvent


class ProcessingStatus(enum.StrEnum):
    """How the pipeline disposed of a verified delivery."""

    ACCEPTED = "accepted"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"


@dc.dataclass(frozen=True, slots=True)
class ProcessingOutcome:
    """Result of :meth:`WebhookReconciler.process`.

    Every outcome is answered with HTTP 200; only authentication and
    payload errors, raised as exceptions, produce other statuses.
    """

    delivery_id: str
    event: str
    status: ProcessingStatus
    detail: str = ""
    bounty_id: str | None = None
    payment: PaymentOutcome | None = None


class WebhookReconciler:
    """Drive one webhook delivery through the reconciliation pipeline."""

    def __init__(  # noqa: PLR0913
        self,
        config: WebhookConfig,
        *,
        classifier: EventClassifier,
        correlator: BountyCorrelator,
        state_machine: ClaimStateMachine,
        bounty_service: BountyService,
        ledger: ReconciliationLedger,
        dispatcher: PayoutDispatcher | None = None,
        auto_payment: bool = True,
        event_logger: ReconciliationEventLogger | None = None,
    ) -> None:
        """Wire the reconciler to its collaborators.

        Parameters
        ----------
        config
            Webhook secret and payload logging settings.
        classifier
            Turns verified envelopes into domain events.
        correlator
            Finds the bounty a merged pull request pays out.
        state_machine
            Applies ``MERGE_CONFIRMED`` to matched bounties.
        bounty_service
            Cancels open bounties when their issue is closed.
        ledger
            Records processed deliveries.
        dispatcher
            Starts payouts for claimed bounties. ``None`` disables payouts.
        auto_payment
            When False, merges still claim bounties but nothing is paid.
        event_logger
            Structured event sink; a default logger is created when omitted.

        """
        self._config = config
        self._classifier = classifier
        self._correlator = correlator
        self._state_machine = state_machine
        self._bounty_service = bounty_service
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._auto_payment = auto_payment
        self._events = event_logger or ReconciliationEventLogger()

    async def process(self, envelope: WebhookEnvelope) -> ProcessingOutcome:
        """Verify, classify and act on one delivery.

        Raises
        ------
        WebhookAuthenticationError
            If the signature header is missing or does not match the body.
        MalformedPayloadError
            If required headers are missing or the body cannot be decoded.

        """
        try:
            verify_signature(envelope.body, self._config.secret, envelope.headers)
            if self._config.verbose_logging:
                self._events.log_webhook_payload(
                    delivery_id=envelope.delivery_id,
                    preview=truncate_payload(
                        envelope.body, self._config.max_payload_log_bytes
                    ),
                )
            classified = await self._classifier.classify(envelope)
        except (WebhookAuthenticationError, MalformedPayloadError) as exc:
            self._events.log_webhook_rejected(
                delivery_id=envelope.delivery_id, error=exc
            )
            raise

        if isinstance(classified, DuplicateDelivery):
            self._events.log_webhook_duplicate(delivery_id=classified.delivery_id)
            return ProcessingOutcome(
                delivery_id=classified.delivery_id,
                event=envelope.event_name or "",
                status=ProcessingStatus.DUPLICATE,
                detail="delivery already processed",
            )

        outcome = await self._handle(classified)
        event_name = envelope.event_name or outcome.event
        await self._ledger.record_delivery(
            outcome.delivery_id, event_name, outcome.status.value
        )
        self._events.log_webhook_accepted(
            delivery_id=outcome.delivery_id,
            event_name=outcome.event,
            outcome=outcome.detail or outcome.status.value,
        )
        return outcome

    async def _handle(self, event: DomainEvent) -> ProcessingOutcome:
        match event:
            case PullRequestMerged():
                return await self._handle_merge(event)
            case IssueClosed():
                return await self._handle_issue_closed(event)
            case Ping():
                return self._outcome(event, ProcessingStatus.ACCEPTED, "pong")
            case _:
                return self._outcome(event, ProcessingStatus.IGNORED, "no action")

    @staticmethod
    def _outcome(
        event: DomainEvent,
        status: ProcessingStatus,
        detail: str,
        *,
        bounty_id: str | None = None,
        payment: PaymentOutcome | None = None,
    ) -> ProcessingOutcome:
        return ProcessingOutcome(
            delivery_id=event.delivery_id,
            event=event_label(event),
            status=status,
            detail=detail,
            bounty_id=bounty_id,
            payment=payment,
        )

    async def _handle_merge(self, event: PullRequestMerged) -> ProcessingOutcome:
        correlation = await self._correlator.correlate(event)
        bounty = correlation.bounty

        match correlation.result:
            case CorrelationResult.MATCHED if bounty is not None:
                try:
                    claimed = await self._state_machine.apply(
                        bounty, ClaimEvent.MERGE_CONFIRMED
                    )
                except IllegalTransitionError as exc:
                    self._events.log_transition_skipped(bounty_id=bounty.id, error=exc)
                    return self._outcome(
                        event,
                        ProcessingStatus.IGNORED,
                        "transition skipped",
                        bounty_id=bounty.id,
                    )
                self._events.log_bounty_claimed(bounty_id=claimed.id, pr_url=event.pr_url)
                payment = await self._dispatch(claimed)
                return self._outcome(
                    event,
                    ProcessingStatus.ACCEPTED,
                    "claimed",
                    bounty_id=claimed.id,
                    payment=payment,
                )
            case CorrelationResult.AUTHOR_MISMATCH if bounty is not None:
                self._events.log_author_mismatch(
                    bounty_id=bounty.id,
                    pr_url=event.pr_url,
                    author_login=correlation.author_login,
                )
                return self._outcome(
                    event, ProcessingStatus.IGNORED, "author mismatch", bounty_id=bounty.id
                )
            case CorrelationResult.REPLAYED if bounty is not None:
                payment = None
                if (
                    bounty.state is BountyState.CLAIMED
                    and bounty.payment.status is PaymentStatus.PENDING
                ):
                    payment = await self._dispatch(bounty)
                return self._outcome(
                    event,
                    ProcessingStatus.IGNORED,
                    "merge already applied",
                    bounty_id=bounty.id,
                    payment=payment,
                )
            case _:
                self._events.log_unmatched(
                    pr_url=event.pr_url, detail=correlation.detail
                )
                return self._outcome(
                    event, ProcessingStatus.IGNORED, correlation.result.value
                )

    async def _dispatch(self, bounty: Bounty) -> PaymentOutcome | None:
        if not self._auto_payment or self._dispatcher is None:
            return None
        self._events.log_payment_dispatched(
            bounty_id=bounty.id, mode=self._dispatcher.mode.value
        )
        return await self._dispatcher.dispatch(bounty.id)

    async def _handle_issue_closed(self, event: IssueClosed) -> ProcessingOutcome:
        cancelled = await self._bounty_service.cancel_open_for_issue(
            event.repository_full_name, event.issue_number
        )
        for bounty in cancelled:
            self._events.log_bounty_cancelled(bounty_id=bounty.id, reason="issue closed")
        if not cancelled:
            return self._outcome(event, ProcessingStatus.IGNORED, "no open bounty")
        return self._outcome(
            event,
            ProcessingStatus.ACCEPTED,
            f"cancelled {len(cancelled)} bounty(ies)",
            bounty_id=cancelled[0].id,
        )
