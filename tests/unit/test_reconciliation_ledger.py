"""Unit tests for the SQL reconciliation ledger."""

from __future__ import annotations

import typing as typ

import pytest

from solforge.ledger.errors import AttemptNotFoundError
from solforge.ledger.storage import AttemptStatus
from solforge.ledger.store import SqlReconciliationLedger
from tests.helpers.bounties import create_claimed_bounty

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@pytest.mark.asyncio
async def test_record_delivery_is_idempotent(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """The second record of a delivery ID reports a duplicate."""
    ledger = SqlReconciliationLedger(session_factory)

    first = await ledger.record_delivery("d-1", "pull_request", "accepted")
    second = await ledger.record_delivery("d-1", "pull_request", "accepted")

    assert first is True
    assert second is False
    assert await ledger.has_delivery("d-1") is True
    assert await ledger.has_delivery("d-2") is False


@pytest.mark.asyncio
async def test_attempts_are_numbered_per_bounty(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Attempt numbers increase from one for each bounty."""
    ledger = SqlReconciliationLedger(session_factory)
    first_bounty = await create_claimed_bounty(session_factory)
    second_bounty = await create_claimed_bounty(session_factory)

    a1 = await ledger.start_attempt(first_bounty.id, "fp")
    a2 = await ledger.start_attempt(first_bounty.id, "fp")
    b1 = await ledger.start_attempt(second_bounty.id, "fp2")

    assert (a1.attempt_number, a2.attempt_number, b1.attempt_number) == (1, 2, 1)
    assert a1.status is AttemptStatus.BUILDING


@pytest.mark.asyncio
async def test_attempt_lifecycle(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Signatures and outcomes are recorded and queryable."""
    ledger = SqlReconciliationLedger(session_factory)
    bounty = await create_claimed_bounty(session_factory)

    failed = await ledger.start_attempt(bounty.id, "fp")
    await ledger.mark_attempt_submitted(failed.id, "sig-1")
    await ledger.mark_attempt_failed(failed.id, "not confirmed", timed_out=True)
    unsigned = await ledger.start_attempt(bounty.id, "fp")
    await ledger.mark_attempt_failed(unsigned.id, "simulation failed")

    pending = await ledger.list_unconfirmed_signatures(bounty.id)
    assert [a.signature for a in pending] == ["sig-1"]
    assert pending[0].status is AttemptStatus.TIMED_OUT
    assert await ledger.find_confirmed_attempt(bounty.id, "fp") is None

    confirmed = await ledger.mark_attempt_confirmed(failed.id)

    assert confirmed.error is None
    found = await ledger.find_confirmed_attempt(bounty.id, "fp")
    assert found is not None
    assert found.signature == "sig-1"
    assert await ledger.find_confirmed_attempt(bounty.id, "other") is None
    assert await ledger.list_unconfirmed_signatures(bounty.id) == []
    statuses = [a.status for a in await ledger.attempts_for(bounty.id)]
    assert statuses == [AttemptStatus.CONFIRMED, AttemptStatus.FAILED]


@pytest.mark.asyncio
async def test_dropped_signatures_are_not_rechecked(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A dropped attempt keeps its signature but leaves the unsettled list."""
    ledger = SqlReconciliationLedger(session_factory)
    bounty = await create_claimed_bounty(session_factory)
    attempt = await ledger.start_attempt(bounty.id, "fp")
    submitted = await ledger.mark_attempt_submitted(
        attempt.id, "sig-1", last_valid_block_height=1_150
    )

    dropped = await ledger.mark_attempt_dropped(attempt.id, "blockhash expired")

    assert submitted.last_valid_block_height == 1_150
    assert dropped.status is AttemptStatus.DROPPED
    assert dropped.signature == "sig-1"
    assert dropped.error == "blockhash expired"
    assert await ledger.list_unconfirmed_signatures(bounty.id) == []


@pytest.mark.asyncio
async def test_unknown_attempt_raises(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Updating a missing attempt raises AttemptNotFoundError."""
    with pytest.raises(AttemptNotFoundError):
        await SqlReconciliationLedger(session_factory).mark_attempt_confirmed(999)
