"""Unit tests for the claim lifecycle transition table."""

from __future__ import annotations

import asyncio
import itertools
import typing as typ

import pytest

from solforge.bounties.errors import IllegalTransitionError
from solforge.bounties.models import BountyState, ClaimEvent
from solforge.bounties.state_machine import TRANSITIONS, ClaimStateMachine, next_state
from solforge.bounties.store import SqlBountyStore
from tests.helpers.bounties import create_open_bounty, create_submitted_bounty

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

_ABSORBING = (BountyState.COMPLETED, BountyState.CANCELLED, BountyState.FAILED)


@pytest.mark.parametrize(
    ("state", "event"), list(itertools.product(BountyState, ClaimEvent))
)
def test_table_is_total(state: BountyState, event: ClaimEvent) -> None:
    """Every pair either transitions per the table or raises."""
    if (state, event) in TRANSITIONS:
        assert next_state(state, event) is TRANSITIONS[(state, event)]
        return
    with pytest.raises(IllegalTransitionError) as excinfo:
        next_state(state, event)
    assert excinfo.value.state is state
    assert excinfo.value.event is event


def test_exactly_six_legal_transitions() -> None:
    """Only the documented transitions exist."""
    assert len(TRANSITIONS) == 6, f"unexpected table: {TRANSITIONS}"


@pytest.mark.parametrize("state", _ABSORBING)
def test_terminal_states_are_absorbing(state: BountyState) -> None:
    """No event leaves completed, cancelled or failed."""
    assert all((state, event) not in TRANSITIONS for event in ClaimEvent)


@pytest.mark.asyncio
async def test_apply_persists_new_state(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Applying CANCEL to an open bounty stores ``cancelled``."""
    bounty = await create_open_bounty(session_factory)
    machine = ClaimStateMachine(SqlBountyStore(session_factory))

    updated = await machine.apply(bounty, ClaimEvent.CANCEL)

    assert updated.state is BountyState.CANCELLED
    assert updated.version == bounty.version + 1


@pytest.mark.asyncio
async def test_stale_snapshot_loses_race(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A second writer holding the old snapshot gets IllegalTransitionError."""
    bounty = await create_submitted_bounty(session_factory)
    machine = ClaimStateMachine(SqlBountyStore(session_factory))
    await machine.apply(bounty, ClaimEvent.MERGE_CONFIRMED)

    with pytest.raises(IllegalTransitionError, match="left state submitted"):
        await machine.apply(bounty, ClaimEvent.MERGE_CONFIRMED)


@pytest.mark.asyncio
async def test_concurrent_merges_claim_once(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Of two concurrent MERGE_CONFIRMED applications exactly one wins."""
    bounty = await create_submitted_bounty(session_factory)
    machine = ClaimStateMachine(SqlBountyStore(session_factory))

    results = await asyncio.gather(
        machine.apply(bounty, ClaimEvent.MERGE_CONFIRMED),
        machine.apply(bounty, ClaimEvent.MERGE_CONFIRMED),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, IllegalTransitionError)]
    assert len(errors) == 1, f"expected one loser, got {results!r}"
