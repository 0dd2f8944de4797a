"""Reconciliation ledger errors."""

from __future__ import annotations

from solforge.errors import ErrorKind, SolForgeError


class AttemptConflictError(SolForgeError, RuntimeError):
    """Raised when two writers allocate the same attempt number."""

    kind = ErrorKind.ILLEGAL_TRANSITION

    @classmethod
    def for_attempt(cls, bounty_id: str, attempt_number: int) -> AttemptConflictError:
        """Return an error naming the contested attempt."""
        return cls(
            f"payment attempt {attempt_number} for bounty {bounty_id} already exists"
        )


class AttemptNotFoundError(SolForgeError, LookupError):
    """Raised when an attempt ID does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, attempt_id: int) -> None:
        """Record the missing attempt ID."""
        self.attempt_id = attempt_id
        super().__init__(f"No payment attempt with id {attempt_id} exists.")
