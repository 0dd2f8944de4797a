"""Errors raised while building, simulating and submitting transfers."""

from __future__ import annotations

from solforge.errors import ErrorKind, SolForgeError


class SimulationFailedError(SolForgeError, RuntimeError):
    """Raised when preflight simulation rejects a transaction."""

    kind = ErrorKind.SIMULATION_FAILED
    retryable = True

    def __init__(self, message: str, *, logs: tuple[str, ...] = ()) -> None:
        """Record the program logs returned with the failure."""
        self.logs = logs
        super().__init__(message)

    @classmethod
    def from_error(
        cls, error: object, logs: tuple[str, ...] = ()
    ) -> SimulationFailedError:
        """Return an error describing the simulation result."""
        return cls(f"simulation failed: {error}", logs=logs)


class SubmissionFailedError(SolForgeError, RuntimeError):
    """Raised when the RPC node rejects a transaction or it fails on chain."""

    kind = ErrorKind.SUBMISSION_FAILED
    retryable = True

    @classmethod
    def rejected(cls, detail: str) -> SubmissionFailedError:
        """Return an error for a transaction the RPC node refused."""
        return cls(f"submission rejected: {detail}")

    @classmethod
    def on_chain(cls, signature: str, error: object) -> SubmissionFailedError:
        """Return an error for a transaction that landed with an error."""
        return cls(f"transaction {signature} failed on chain: {error}")


class ConfirmationTimeoutError(SolForgeError, TimeoutError):
    """Raised when a submitted transaction is not confirmed in time."""

    kind = ErrorKind.CONFIRMATION_TIMEOUT
    retryable = True

    def __init__(self, signature: str, timeout_s: float) -> None:
        """Record the signature that did not confirm."""
        self.signature = signature
        super().__init__(
            f"transaction {signature} not confirmed within {timeout_s:g}s"
        )


class FeeCeilingExceededError(SolForgeError, RuntimeError):
    """Raised when the quoted network fee is above the configured ceiling."""

    kind = ErrorKind.SIMULATION_FAILED
    retryable = True

    def __init__(self, fee_lamports: int, ceiling_lamports: int) -> None:
        """Record the quoted fee and the ceiling."""
        self.fee_lamports = fee_lamports
        self.ceiling_lamports = ceiling_lamports
        super().__init__(
            f"network fee {fee_lamports} lamports exceeds ceiling "
            f"{ceiling_lamports} lamports"
        )


class RpcUnavailableError(SolForgeError, RuntimeError):
    """Raised when an RPC call times out or cannot reach the node."""

    kind = ErrorKind.UPSTREAM
    retryable = True

    @classmethod
    def for_call(cls, call: str, detail: str) -> RpcUnavailableError:
        """Return an error naming the failed RPC call."""
        return cls(f"RPC {call} failed: {detail}")


class InvalidAddressError(SolForgeError, ValueError):
    """Raised when a wallet or mint address is not a valid public key."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, value: str) -> None:
        """Record the rejected address."""
        self.value = value
        super().__init__(f"not a valid Solana address: {value!r}")


class ChainConfigError(SolForgeError, RuntimeError):
    """Raised when Solana configuration is invalid."""

    kind = ErrorKind.CONFIGURATION

    @classmethod
    def missing_payout_key(cls) -> ChainConfigError:
        """Return an error when no payout authority key is configured."""
        return cls("SOLFORGE_PAYOUT_KEY is required for automatic payments")

    @classmethod
    def invalid_payout_key(cls) -> ChainConfigError:
        """Return an error for a key that cannot be decoded.

        The key material itself is never included in the message.
        """
        return cls("SOLFORGE_PAYOUT_KEY is not a base58 or JSON array keypair")

    @classmethod
    def unknown_cluster(cls, cluster: str) -> ChainConfigError:
        """Return an error for an unsupported cluster name."""
        return cls(f"unknown Solana cluster: {cluster!r}")
