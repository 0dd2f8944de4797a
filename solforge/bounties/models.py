"""Domain models for bounties and their payment projection."""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


class BountyState(enum.StrEnum):
    """Lifecycle state of a bounty."""

    OPEN = "open"
    SUBMITTED = "submitted"
    CLAIMED = "claimed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ClaimEvent(enum.StrEnum):
    """Inputs that drive the claim state machine."""

    SUBMIT = "submit"
    MERGE_CONFIRMED = "merge_confirmed"
    PAYMENT_CONFIRMED = "payment_confirmed"
    RETRIES_EXHAUSTED = "retries_exhausted"
    CANCEL = "cancel"


class Currency(enum.StrEnum):
    """Reward currency: native SOL or an SPL token identified by its mint."""

    SOL = "SOL"
    TOKEN = "TOKEN"


class PaymentStatus(enum.StrEnum):
    """User-visible payment status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dc.dataclass(frozen=True, slots=True)
class Reward:
    """Reward amount in integer base units."""

    amount: int
    currency: Currency
    decimals: int
    mint: str | None = None


@dc.dataclass(frozen=True, slots=True)
class PaymentRecord:
    """Denormalised view of the latest payment attempt."""

    status: PaymentStatus = PaymentStatus.PENDING
    signature: str | None = None
    attempts: int = 0
    last_error: str | None = None
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    failed_at: dt.datetime | None = None


@dc.dataclass(frozen=True, slots=True)
class Bounty:
    """Immutable snapshot of a stored bounty."""

    id: str
    title: str
    description: str
    reward: Reward
    repository_full_name: str
    repository_url: str
    issue_url: str
    issue_number: int
    creator_id: str
    creator_wallet: str
    state: BountyState
    created_at: dt.datetime
    updated_at: dt.datetime
    version: int
    payment: PaymentRecord = dc.field(default_factory=PaymentRecord)
    pr_url: str | None = None
    pr_number: int | None = None
    claimant_login: str | None = None
    claimant_wallet: str | None = None
    deadline: dt.datetime | None = None


@dc.dataclass(frozen=True, slots=True)
class NewBounty:
    """Validated input for persisting a new bounty."""

    title: str
    description: str
    reward: Reward
    repository_full_name: str
    repository_url: str
    issue_url: str
    issue_number: int
    creator_id: str
    creator_wallet: str
    deadline: dt.datetime | None = None


@dc.dataclass(frozen=True, slots=True)
class TransitionFields:
    """Columns written alongside a state transition.

    ``None`` means "leave unchanged".
    """

    pr_url: str | None = None
    pr_number: int | None = None
    claimant_login: str | None = None
    claimant_wallet: str | None = None
    payment_status: PaymentStatus | None = None
    payment_signature: str | None = None
    payment_last_error: str | None = None
    payment_completed_at: dt.datetime | None = None
    payment_failed_at: dt.datetime | None = None

    def as_values(self) -> dict[str, object]:
        """Return the non-``None`` fields as column values."""
        return {
            field.name: getattr(self, field.name)
            for field in dc.fields(self)
            if getattr(self, field.name) is not None
        }
