"""Unit tests for the payment executor.

Run with:
    pytest tests/unit/test_payment_executor.py
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import datetime as dt
import typing as typ

import pytest

from solforge.bounties.errors import BountyNotFoundError
from solforge.bounties.models import (
    Bounty,
    BountyState,
    Currency,
    PaymentStatus,
    Reward,
)
from solforge.bounties.state_machine import ClaimStateMachine
from solforge.bounties.store import SqlBountyStore
from solforge.chain.client import SignatureState
from solforge.common.time import utcnow
from solforge.ledger.storage import AttemptStatus
from solforge.ledger.store import SqlReconciliationLedger
from solforge.payments.config import PaymentConfig
from solforge.payments.executor import PaymentExecutor, PayoutResult
from solforge.payments.fingerprint import payment_fingerprint
from tests.helpers.bounties import create_claimed_bounty, create_submitted_bounty
from tests.helpers.ledger_fakes import FakeLedgerClient

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

FAST = PaymentConfig(
    max_attempts=3, confirmation_timeout_s=1.0, budget_s=30.0, retry_delay_s=0.01
)


def _executor(
    session_factory: async_sessionmaker[AsyncSession],
    client: FakeLedgerClient,
    *,
    config: PaymentConfig = FAST,
    max_fee_lamports: int = 0,
) -> PaymentExecutor:
    store = SqlBountyStore(session_factory)
    return PaymentExecutor(
        store,
        SqlReconciliationLedger(session_factory),
        client,
        ClaimStateMachine(store),
        config=config,
        max_fee_lamports=max_fee_lamports,
    )


@pytest.mark.asyncio
async def test_successful_payout_completes_bounty(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A clean run pays the claimant once and completes the bounty."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient()

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.COMPLETED
    assert outcome.signature == "fake-signature-1"
    assert outcome.attempts == 1
    assert client.submitted == ["fake-signature-1"]
    assert client.built[0].amount == 100_000_000
    assert client.built[0].recipient == bounty.claimant_wallet
    stored = await SqlBountyStore(session_factory).get(bounty.id)
    assert stored is not None
    assert stored.state is BountyState.COMPLETED
    assert stored.payment.status is PaymentStatus.COMPLETED
    assert stored.payment.signature == "fake-signature-1"
    assert stored.payment.completed_at is not None


@pytest.mark.asyncio
async def test_second_execution_is_a_no_op(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Executing a completed bounty again touches nothing on chain."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient()
    executor = _executor(session_factory, client)
    await executor.execute(bounty.id)

    again = await executor.execute(bounty.id)

    assert again.result is PayoutResult.ALREADY_COMPLETED
    assert again.signature == "fake-signature-1"
    assert len(client.built) == 1, "no second transaction may be built"


@pytest.mark.asyncio
async def test_simulation_failures_exhaust_retries(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Three failed simulations leave the bounty failed with no signature."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(simulate_failures=3)

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.FAILED
    assert outcome.attempts == 3
    assert outcome.last_error is not None
    assert "InsufficientFunds" in outcome.last_error
    assert client.submitted == [], "nothing may be broadcast"
    stored = await SqlBountyStore(session_factory).get(bounty.id)
    assert stored is not None
    assert stored.state is BountyState.FAILED
    assert stored.payment.status is PaymentStatus.FAILED
    assert stored.payment.signature is None
    assert stored.payment.attempts == 3
    assert stored.payment.last_error == outcome.last_error
    attempts = await SqlReconciliationLedger(session_factory).attempts_for(bounty.id)
    assert [a.status for a in attempts] == [AttemptStatus.FAILED] * 3


@pytest.mark.asyncio
async def test_transient_failure_then_success(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A failure followed by success completes on the second attempt."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(simulate_failures=1)

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.COMPLETED
    assert outcome.attempts == 2
    assert outcome.signature == "fake-signature-2"


@pytest.mark.asyncio
async def test_fee_above_ceiling_is_never_submitted(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A quoted fee over the ceiling fails the attempt before simulation."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(fee_lamports=20_000)

    outcome = await _executor(
        session_factory, client, max_fee_lamports=10_000
    ).execute(bounty.id)

    assert outcome.result is PayoutResult.FAILED
    assert outcome.last_error is not None
    assert "exceeds ceiling" in outcome.last_error
    assert client.submitted == []


@pytest.mark.asyncio
async def test_late_confirmation_is_recovered_without_resubmitting(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A submission that confirms after its timeout is not paid twice."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(confirm_timeouts=1)

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.COMPLETED
    assert outcome.signature == "fake-signature-1"
    assert client.submitted == ["fake-signature-1"], "must not broadcast again"
    attempts = await SqlReconciliationLedger(session_factory).attempts_for(bounty.id)
    assert [a.status for a in attempts] == [AttemptStatus.CONFIRMED]


@pytest.mark.asyncio
async def test_concurrent_executors_pay_once(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Two executors racing on one bounty produce one confirmed attempt."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(build_delay_s=0.05)

    outcomes = await asyncio.gather(
        _executor(session_factory, client).execute(bounty.id),
        _executor(session_factory, client).execute(bounty.id),
    )

    results = sorted(outcome.result for outcome in outcomes)
    assert results == sorted([PayoutResult.COMPLETED, PayoutResult.SKIPPED])
    assert len(client.submitted) == 1
    attempts = await SqlReconciliationLedger(session_factory).attempts_for(bounty.id)
    assert [a.status for a in attempts] == [AttemptStatus.CONFIRMED]


@pytest.mark.asyncio
async def test_non_claimed_bounty_is_skipped(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Only claimed bounties are paid."""
    bounty = await create_submitted_bounty(session_factory)
    client = FakeLedgerClient()

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.SKIPPED
    assert outcome.detail == "bounty is submitted"
    assert client.built == []


@pytest.mark.asyncio
async def test_unknown_bounty_raises(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Executing an unknown ID raises BountyNotFoundError."""
    with pytest.raises(BountyNotFoundError):
        await _executor(session_factory, FakeLedgerClient()).execute("missing")


@pytest.mark.asyncio
async def test_reconcile_completes_from_confirmed_earlier_submission(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A crashed worker's confirmed signature completes the bounty."""
    bounty = await create_claimed_bounty(session_factory)
    store = SqlBountyStore(session_factory)
    ledger = SqlReconciliationLedger(session_factory)
    client = FakeLedgerClient()
    assert await store.acquire_payment_lease(bounty.id)
    attempt = await ledger.start_attempt(bounty.id, payment_fingerprint(bounty))
    await ledger.mark_attempt_submitted(attempt.id, "crashed-signature")
    client.statuses["crashed-signature"] = SignatureState.CONFIRMED

    outcome = await _executor(session_factory, client).reconcile(bounty.id)

    assert outcome.result is PayoutResult.COMPLETED
    assert outcome.signature == "crashed-signature"
    assert client.built == [], "recovery must not build a new transaction"


@pytest.mark.asyncio
async def test_reconcile_leaves_live_lease_alone(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A fresh processing lease with no landed signature is not taken over."""
    bounty = await create_claimed_bounty(session_factory)
    assert await SqlBountyStore(session_factory).acquire_payment_lease(bounty.id)
    client = FakeLedgerClient()

    outcome = await _executor(session_factory, client).reconcile(bounty.id)

    assert outcome.result is PayoutResult.SKIPPED
    assert client.built == []


@pytest.mark.asyncio
async def test_reconcile_stalled_pays_pending_bounties(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """The sweep pays claimed bounties that were never dispatched."""
    bounty = await create_claimed_bounty(session_factory)

    outcomes = await _executor(session_factory, FakeLedgerClient()).reconcile_stalled()

    assert [(o.bounty_id, o.result) for o in outcomes] == [
        (bounty.id, PayoutResult.COMPLETED)
    ]


@pytest.mark.asyncio
async def test_pending_transfer_is_never_rebroadcast(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Repeated confirmation timeouts wait on the first transfer, not a new one."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(confirm_timeouts=3)

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.COMPLETED
    assert outcome.signature == "fake-signature-1"
    assert client.submitted == ["fake-signature-1"], "exactly one broadcast"
    assert len(client.built) == 1, "no transfer may be built while one is pending"


@pytest.mark.asyncio
async def test_lost_transfer_is_retried_only_after_blockhash_expiry(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """An unseen signature blocks a retry until its blockhash has expired."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(lost_submissions=1, blocks_per_check=100)

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.COMPLETED
    assert outcome.signature == "fake-signature-2"
    assert client.submitted == ["fake-signature-1", "fake-signature-2"]
    assert client.block_height_now > 1_150, "retry only after height 1150 passed"
    attempts = await SqlReconciliationLedger(session_factory).attempts_for(bounty.id)
    assert [a.status for a in attempts] == [
        AttemptStatus.DROPPED,
        AttemptStatus.CONFIRMED,
    ]
    assert attempts[0].last_valid_block_height == 1_150


@pytest.mark.asyncio
async def test_bounty_fails_only_once_every_transfer_is_dropped(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Exhausted retries fail the bounty after each signature has expired."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(lost_submissions=3, blocks_per_check=1_000)

    outcome = await _executor(session_factory, client).execute(bounty.id)

    assert outcome.result is PayoutResult.FAILED
    assert len(client.submitted) == 3
    attempts = await SqlReconciliationLedger(session_factory).attempts_for(bounty.id)
    assert [a.status for a in attempts] == [AttemptStatus.DROPPED] * 3


@pytest.mark.asyncio
async def test_budget_exhausted_with_transfer_in_flight_is_not_failed(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A transfer that may still land keeps the bounty claimed until it settles."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(confirm_timeouts=10_000)
    short = PaymentConfig(
        max_attempts=3, confirmation_timeout_s=0.05, budget_s=0.2, retry_delay_s=0.01
    )
    executor = _executor(session_factory, client, config=short)

    outcome = await executor.execute(bounty.id)

    assert outcome.result is PayoutResult.UNSETTLED
    assert client.submitted == ["fake-signature-1"]
    stored = await SqlBountyStore(session_factory).get(bounty.id)
    assert stored is not None
    assert stored.state is BountyState.CLAIMED, "an in-flight payout is not failed"
    assert stored.payment.status is PaymentStatus.PROCESSING

    client.confirm_timeouts = 0
    recovered = await executor.reconcile(bounty.id)

    assert recovered.result is PayoutResult.COMPLETED
    assert recovered.signature == "fake-signature-1"
    assert client.submitted == ["fake-signature-1"], "the late landing is kept"
    completed = await SqlBountyStore(session_factory).get(bounty.id)
    assert completed is not None
    assert completed.state is BountyState.COMPLETED


@pytest.mark.asyncio
async def test_reconcile_waits_for_unexpired_unknown_signature(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Crash recovery builds nothing while an unseen transfer can still land."""
    bounty = await create_claimed_bounty(session_factory)
    ledger = SqlReconciliationLedger(session_factory)
    attempt = await ledger.start_attempt(bounty.id, payment_fingerprint(bounty))
    await ledger.mark_attempt_submitted(
        attempt.id, "crashed-signature", last_valid_block_height=2_000
    )
    client = FakeLedgerClient()

    outcome = await _executor(session_factory, client).reconcile(bounty.id)

    assert outcome.result is PayoutResult.UNSETTLED
    assert "crashed-signature" in outcome.detail
    assert client.built == []


@pytest.mark.asyncio
async def test_reconcile_retries_after_transfer_failed_on_chain(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A signature that landed with an error is dropped and the payout retried."""
    bounty = await create_claimed_bounty(session_factory)
    ledger = SqlReconciliationLedger(session_factory)
    attempt = await ledger.start_attempt(bounty.id, payment_fingerprint(bounty))
    await ledger.mark_attempt_submitted(
        attempt.id, "reverted-signature", last_valid_block_height=2_000
    )
    client = FakeLedgerClient()
    client.statuses["reverted-signature"] = SignatureState.FAILED

    outcome = await _executor(session_factory, client).reconcile(bounty.id)

    assert outcome.result is PayoutResult.COMPLETED
    assert outcome.signature == "fake-signature-1"
    attempts = await ledger.attempts_for(bounty.id)
    assert [a.status for a in attempts] == [
        AttemptStatus.DROPPED,
        AttemptStatus.CONFIRMED,
    ]


@pytest.mark.asyncio
async def test_running_executor_keeps_its_lease_fresh(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Each settle-and-attempt loop renews the payment lease."""
    bounty = await create_claimed_bounty(session_factory)
    client = FakeLedgerClient(confirm_timeouts=10_000)
    short = PaymentConfig(
        max_attempts=1, confirmation_timeout_s=0.05, budget_s=0.2, retry_delay_s=0.01
    )
    started = utcnow()

    await _executor(session_factory, client, config=short).execute(bounty.id)

    stored = await SqlBountyStore(session_factory).get(bounty.id)
    assert stored is not None
    assert stored.payment.started_at is not None
    assert stored.payment.started_at > started + dt.timedelta(
        milliseconds=100
    ), "the lease start must move with the loop"


def test_fingerprint_depends_on_recipient() -> None:
    """Changing the claimant wallet changes the payout fingerprint."""
    now = dt.datetime(2026, 1, 1, tzinfo=dt.UTC)
    bounty = Bounty(
        id="b-1",
        title="t",
        description="",
        reward=Reward(amount=1, currency=Currency.SOL, decimals=9),
        repository_full_name="o/r",
        repository_url="https://github.com/o/r",
        issue_url="https://github.com/o/r/issues/1",
        issue_number=1,
        creator_id="c",
        creator_wallet="creator",
        state=BountyState.CLAIMED,
        created_at=now,
        updated_at=now,
        version=1,
        claimant_wallet="wallet-a",
    )
    moved = dc.replace(bounty, claimant_wallet="wallet-b")

    assert payment_fingerprint(bounty) == payment_fingerprint(dc.replace(bounty))
    assert payment_fingerprint(bounty) != payment_fingerprint(moved)
