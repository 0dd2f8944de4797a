"""Bounty storage, lifecycle state machine and correlation."""

from __future__ import annotations

from .config import BountyConfig
from .correlator import (
    BountyCorrelator,
    Correlation,
    CorrelationResult,
    closing_issue_numbers,
)
from .errors import BountyNotFoundError, BountyValidationError, IllegalTransitionError
from .models import (
    Bounty,
    BountyState,
    ClaimEvent,
    Currency,
    NewBounty,
    PaymentRecord,
    PaymentStatus,
    Reward,
    TransitionFields,
)
from .service import (
    BountyService,
    CreateBountyRequest,
    CreatedBounty,
    FundingInstruction,
    SubmissionRequest,
)
from .state_machine import TRANSITIONS, ClaimStateMachine, next_state
from .storage import Base, BountyRecord, UTCDateTime, init_bounty_storage
from .store import BountyStore, SqlBountyStore

__all__ = [
    "TRANSITIONS",
    "Base",
    "Bounty",
    "BountyConfig",
    "BountyCorrelator",
    "BountyNotFoundError",
    "BountyRecord",
    "BountyService",
    "BountyState",
    "BountyStore",
    "BountyValidationError",
    "ClaimEvent",
    "ClaimStateMachine",
    "Correlation",
    "CorrelationResult",
    "CreateBountyRequest",
    "CreatedBounty",
    "Currency",
    "FundingInstruction",
    "IllegalTransitionError",
    "NewBounty",
    "PaymentRecord",
    "PaymentStatus",
    "Reward",
    "SqlBountyStore",
    "SubmissionRequest",
    "TransitionFields",
    "UTCDateTime",
    "closing_issue_numbers",
    "init_bounty_storage",
    "next_state",
]
