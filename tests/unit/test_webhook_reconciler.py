"""Unit tests for the webhook reconciliation pipeline."""

from __future__ import annotations

import typing as typ

import pytest

from solforge.bounties.models import BountyState, PaymentStatus
from solforge.ledger.store import SqlReconciliationLedger
from solforge.payments.executor import PayoutResult
from solforge.reconciliation.service import ProcessingStatus
from solforge.webhooks.envelope import WebhookEnvelope
from solforge.webhooks.errors import MalformedPayloadError, SignatureMismatchError
from tests.helpers.bounties import create_open_bounty, create_submitted_bounty
from tests.helpers.github_payloads import (
    encode,
    issues_payload,
    pull_request_payload,
    signed_headers,
)
from tests.helpers.ledger_fakes import FakeLedgerClient
from tests.helpers.pipeline import build_reconciler

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def _delivery(
    payload: dict[str, typ.Any], *, event: str = "pull_request", delivery_id: str = "d-1"
) -> WebhookEnvelope:
    body = encode(payload)
    return WebhookEnvelope.from_request(
        signed_headers(body, event=event, delivery_id=delivery_id), body
    )


@pytest.mark.asyncio
async def test_merge_claims_and_pays(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A verified merge of the submitted PR completes the payout."""
    bounty = await create_submitted_bounty(session_factory)
    client = FakeLedgerClient()
    reconciler, service = build_reconciler(session_factory, client)

    outcome = await reconciler.process(_delivery(pull_request_payload()))

    assert outcome.status is ProcessingStatus.ACCEPTED
    assert outcome.detail == "claimed"
    assert outcome.bounty_id == bounty.id
    assert outcome.payment is not None
    assert outcome.payment.result is PayoutResult.COMPLETED
    stored = await service.get(bounty.id)
    assert stored.state is BountyState.COMPLETED
    assert stored.payment.signature == "fake-signature-1"
    assert await SqlReconciliationLedger(session_factory).has_delivery("d-1")


@pytest.mark.asyncio
async def test_redelivery_is_duplicate_and_pays_once(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """The same delivery ID is acknowledged without reprocessing."""
    await create_submitted_bounty(session_factory)
    client = FakeLedgerClient()
    reconciler, _ = build_reconciler(session_factory, client)
    envelope = _delivery(pull_request_payload())

    await reconciler.process(envelope)
    again = await reconciler.process(envelope)

    assert again.status is ProcessingStatus.DUPLICATE
    assert len(client.submitted) == 1


@pytest.mark.asyncio
async def test_new_delivery_for_same_merge_is_replay(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A second delivery ID for a paid merge is ignored as a replay."""
    await create_submitted_bounty(session_factory)
    client = FakeLedgerClient()
    reconciler, _ = build_reconciler(session_factory, client)

    await reconciler.process(_delivery(pull_request_payload()))
    replay = await reconciler.process(
        _delivery(pull_request_payload(), delivery_id="d-2")
    )

    assert replay.status is ProcessingStatus.IGNORED
    assert replay.detail == "merge already applied"
    assert replay.payment is None
    assert len(client.submitted) == 1


@pytest.mark.asyncio
async def test_replay_redispatches_unpaid_claim(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A replayed merge resumes a payout that was never started."""
    bounty = await create_submitted_bounty(session_factory)
    client = FakeLedgerClient()
    paused, _ = build_reconciler(session_factory, client, auto_payment=False)
    await paused.process(_delivery(pull_request_payload()))
    reconciler, service = build_reconciler(session_factory, client)

    replay = await reconciler.process(
        _delivery(pull_request_payload(), delivery_id="d-2")
    )

    assert replay.payment is not None
    assert replay.payment.result is PayoutResult.COMPLETED
    assert (await service.get(bounty.id)).state is BountyState.COMPLETED


@pytest.mark.asyncio
async def test_auto_payment_disabled_only_claims(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Without auto payment the bounty stops at ``claimed``."""
    bounty = await create_submitted_bounty(session_factory)
    client = FakeLedgerClient()
    reconciler, service = build_reconciler(
        session_factory, client, auto_payment=False
    )

    outcome = await reconciler.process(_delivery(pull_request_payload()))

    assert outcome.payment is None
    stored = await service.get(bounty.id)
    assert stored.state is BountyState.CLAIMED
    assert stored.payment.status is PaymentStatus.PENDING
    assert client.built == []


@pytest.mark.asyncio
async def test_author_mismatch_changes_nothing(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A merge by someone else leaves the bounty submitted."""
    bounty = await create_submitted_bounty(session_factory)
    reconciler, service = build_reconciler(session_factory, FakeLedgerClient())

    outcome = await reconciler.process(
        _delivery(pull_request_payload(author="intruder"))
    )

    assert outcome.status is ProcessingStatus.IGNORED
    assert outcome.detail == "author mismatch"
    assert (await service.get(bounty.id)).state is BountyState.SUBMITTED


@pytest.mark.asyncio
async def test_merge_not_referencing_the_issue_changes_nothing(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A merged PR that never mentions the bounty issue is ignored."""
    bounty = await create_submitted_bounty(session_factory)
    client = FakeLedgerClient()
    reconciler, service = build_reconciler(session_factory, client)

    outcome = await reconciler.process(
        _delivery(pull_request_payload(body="Drive-by typo fix"))
    )

    assert outcome.status is ProcessingStatus.IGNORED
    assert outcome.detail == "issue_not_referenced"
    assert (await service.get(bounty.id)).state is BountyState.SUBMITTED
    assert client.built == [], "nothing may be paid"


@pytest.mark.asyncio
async def test_tampered_body_is_rejected_before_any_write(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A signature mismatch raises and records nothing."""
    bounty = await create_submitted_bounty(session_factory)
    reconciler, service = build_reconciler(session_factory, FakeLedgerClient())
    body = encode(pull_request_payload())
    headers = signed_headers(body, delivery_id="d-1")
    tampered = body.replace(b'"claimant"', b'"claimanT"')

    with pytest.raises(SignatureMismatchError):
        await reconciler.process(WebhookEnvelope.from_request(headers, tampered))

    assert (await service.get(bounty.id)).state is BountyState.SUBMITTED
    assert not await SqlReconciliationLedger(session_factory).has_delivery("d-1")


@pytest.mark.asyncio
async def test_malformed_payload_is_not_recorded(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A signed but undecodable body raises and is not recorded."""
    reconciler, _ = build_reconciler(session_factory, FakeLedgerClient())
    body = b'{"action": "closed"}'
    envelope = WebhookEnvelope.from_request(
        signed_headers(body, delivery_id="d-9"), body
    )

    with pytest.raises(MalformedPayloadError):
        await reconciler.process(envelope)

    assert not await SqlReconciliationLedger(session_factory).has_delivery("d-9")


@pytest.mark.asyncio
async def test_issue_closed_cancels_open_bounty(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Closing the issue cancels its open bounty."""
    bounty = await create_open_bounty(session_factory)
    reconciler, service = build_reconciler(session_factory, FakeLedgerClient())

    outcome = await reconciler.process(_delivery(issues_payload(), event="issues"))

    assert outcome.status is ProcessingStatus.ACCEPTED
    assert outcome.bounty_id == bounty.id
    assert (await service.get(bounty.id)).state is BountyState.CANCELLED


@pytest.mark.asyncio
async def test_ping_and_unmatched_merge(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Ping answers pong; an unknown merge is ignored as unmatched."""
    reconciler, _ = build_reconciler(session_factory, FakeLedgerClient())

    ping = await reconciler.process(_delivery({"zen": "Hi"}, event="ping"))
    merge = await reconciler.process(
        _delivery(pull_request_payload(number=5), delivery_id="d-2")
    )

    assert (ping.status, ping.detail) == (ProcessingStatus.ACCEPTED, "pong")
    assert (merge.status, merge.detail) == (ProcessingStatus.IGNORED, "unmatched")
