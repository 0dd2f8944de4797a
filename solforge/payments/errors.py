"""Payment executor errors."""

from __future__ import annotations

from solforge.errors import ErrorKind, SolForgeError


class RetryExhaustedError(SolForgeError, RuntimeError):
    """Raised when every payout attempt for a bounty has failed."""

    kind = ErrorKind.RETRY_EXHAUSTED

    def __init__(self, bounty_id: str, attempts: int, last_error: str) -> None:
        """Record the attempt count and the final error verbatim."""
        self.bounty_id = bounty_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"payout for bounty {bounty_id} failed after {attempts} attempts: "
            f"{last_error}"
        )


class PaymentPreconditionError(SolForgeError, RuntimeError):
    """Raised when a bounty cannot be paid in its current form."""

    kind = ErrorKind.INVALID_INPUT

    @classmethod
    def missing_wallet(cls, bounty_id: str) -> PaymentPreconditionError:
        """Return an error for a claimed bounty without a claimant wallet."""
        return cls(f"bounty {bounty_id} has no claimant wallet")
