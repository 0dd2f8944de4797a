"""Tagged error kinds shared by every SolForge component.

Each domain exception derives from :class:`SolForgeError` and carries a
machine-readable :class:`ErrorKind` plus a ``retryable`` flag, so callers
branch on ``exc.kind`` rather than on message text.
"""

from __future__ import annotations

import enum
import typing as typ


class ErrorKind(enum.StrEnum):
    """Machine-readable categories for pipeline failures."""

    SIGNATURE_MISSING = "signature_missing"
    SIGNATURE_MISMATCH = "signature_mismatch"
    MALFORMED_PAYLOAD = "malformed_payload"
    DUPLICATE_DELIVERY = "duplicate_delivery"
    UNMATCHED_EVENT = "unmatched_event"
    AUTHOR_MISMATCH = "author_mismatch"
    ILLEGAL_TRANSITION = "illegal_transition"
    SIMULATION_FAILED = "simulation_failed"
    SUBMISSION_FAILED = "submission_failed"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    RETRY_EXHAUSTED = "retry_exhausted"
    CONFIGURATION = "configuration"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    UPSTREAM = "upstream"


class SolForgeError(Exception):
    """Base class for SolForge domain errors."""

    kind: typ.ClassVar[ErrorKind] = ErrorKind.UPSTREAM
    retryable: typ.ClassVar[bool] = False


__all__ = ["ErrorKind", "SolForgeError"]
