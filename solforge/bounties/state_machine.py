"""Claim lifecycle transitions.

The transition table is total: :func:`next_state` returns the target for
the six legal ``(state, event)`` pairs and raises
:class:`IllegalTransitionError` for every other pair. ``completed``,
``cancelled`` and ``failed`` are absorbing.
"""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

from .errors import BountyNotFoundError, IllegalTransitionError
from .models import BountyState, ClaimEvent

if typ.TYPE_CHECKING:
    from .models import Bounty, TransitionFields
    from .store import BountyStore

TRANSITIONS: cabc.Mapping[tuple[BountyState, ClaimEvent], BountyState] = {
    (BountyState.OPEN, ClaimEvent.SUBMIT): BountyState.SUBMITTED,
    (BountyState.SUBMITTED, ClaimEvent.MERGE_CONFIRMED): BountyState.CLAIMED,
    (BountyState.CLAIMED, ClaimEvent.PAYMENT_CONFIRMED): BountyState.COMPLETED,
    (BountyState.CLAIMED, ClaimEvent.RETRIES_EXHAUSTED): BountyState.FAILED,
    (BountyState.OPEN, ClaimEvent.CANCEL): BountyState.CANCELLED,
    (BountyState.SUBMITTED, ClaimEvent.CANCEL): BountyState.CANCELLED,
}


def next_state(state: BountyState, event: ClaimEvent) -> BountyState:
    """Return the state reached by applying *event* in *state*.

    Raises
    ------
    IllegalTransitionError
        If the pair is not in the transition table.

    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise IllegalTransitionError.for_pair(state, event) from None


class ClaimStateMachine:
    """Apply transitions to stored bounties with compare-and-swap."""

    def __init__(self, store: BountyStore) -> None:
        """Bind the state machine to a bounty store."""
        self._store = store

    async def apply(
        self,
        bounty: Bounty,
        event: ClaimEvent,
        fields: TransitionFields | None = None,
    ) -> Bounty:
        """Transition *bounty* and return the stored result.

        Parameters
        ----------
        bounty
            Snapshot whose ``state`` is the expected current state.
        event
            Event to apply.
        fields
            Extra columns written atomically with the new state.

        Raises
        ------
        IllegalTransitionError
            If the pair is illegal or another writer changed the state first.

        """
        target = next_state(bounty.state, event)
        won = await self._store.compare_and_set_state(
            bounty.id, bounty.state, target, fields
        )
        if not won:
            raise IllegalTransitionError.lost_race(bounty.id, bounty.state, event)
        updated = await self._store.get(bounty.id)
        if updated is None:
            raise BountyNotFoundError(bounty.id)
        return updated
