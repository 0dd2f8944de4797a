"""Solana ledger access: configuration, keys, instructions and RPC client."""

from __future__ import annotations

from .client import (
    LedgerClient,
    PreparedTransfer,
    SignatureState,
    SignatureStatus,
    SolanaLedgerClient,
    TransferRequest,
)
from .config import SolanaConfig
from .errors import (
    ChainConfigError,
    ConfirmationTimeoutError,
    FeeCeilingExceededError,
    InvalidAddressError,
    RpcUnavailableError,
    SimulationFailedError,
    SubmissionFailedError,
)
from .keys import load_keypair, parse_pubkey

__all__ = [
    "ChainConfigError",
    "ConfirmationTimeoutError",
    "FeeCeilingExceededError",
    "InvalidAddressError",
    "LedgerClient",
    "PreparedTransfer",
    "RpcUnavailableError",
    "SignatureState",
    "SignatureStatus",
    "SimulationFailedError",
    "SolanaConfig",
    "SolanaLedgerClient",
    "SubmissionFailedError",
    "TransferRequest",
    "load_keypair",
    "parse_pubkey",
]
