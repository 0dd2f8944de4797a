"""Bounty lifecycle errors."""

from __future__ import annotations

import typing as typ

from solforge.errors import ErrorKind, SolForgeError

if typ.TYPE_CHECKING:
    from .models import BountyState, ClaimEvent


class BountyNotFoundError(SolForgeError, LookupError):
    """Raised when a bounty ID does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, bounty_id: str) -> None:
        """Record the missing bounty ID."""
        self.bounty_id = bounty_id
        super().__init__(f"No bounty with id '{bounty_id}' exists.")


class IllegalTransitionError(SolForgeError):
    """Raised for a state/event pair outside the transition table.

    Also raised when a compare-and-swap loses to a concurrent writer; the
    caller treats both as a no-op.
    """

    kind = ErrorKind.ILLEGAL_TRANSITION

    def __init__(
        self,
        message: str,
        *,
        state: BountyState | None = None,
        event: ClaimEvent | None = None,
    ) -> None:
        """Record the offending state and event."""
        self.state = state
        self.event = event
        super().__init__(message)

    @classmethod
    def for_pair(cls, state: BountyState, event: ClaimEvent) -> IllegalTransitionError:
        """Return an error for a pair with no legal transition."""
        return cls(
            f"event {event.value} is not allowed in state {state.value}",
            state=state,
            event=event,
        )

    @classmethod
    def lost_race(
        cls, bounty_id: str, state: BountyState, event: ClaimEvent
    ) -> IllegalTransitionError:
        """Return an error when the stored state changed underneath us."""
        return cls(
            f"bounty {bounty_id} left state {state.value} before {event.value} applied",
            state=state,
            event=event,
        )


class BountyValidationError(SolForgeError, ValueError):
    """Raised when bounty input fails validation."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialise with a validation reason and optional field name."""
        self.reason = reason
        self.field = field
        super().__init__(f"{field}: {reason}" if field is not None else reason)


class NaiveDatetimeError(ValueError):
    """Raised when a datetime bound to the database lacks tzinfo."""

    def __init__(self) -> None:
        """Attach a consistent message."""
        super().__init__("datetime values must be timezone aware")
