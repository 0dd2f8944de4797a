"""Configuration for automatic payouts.

Usage
-----
Create a configuration with defaults:

>>> config = PaymentConfig()
>>> config.max_attempts
3

Or load from environment variables:

>>> import os
>>> os.environ["SOLFORGE_PAYMENT_MAX_ATTEMPTS"] = "5"
>>> PaymentConfig.from_env().max_attempts
5

"""

from __future__ import annotations

import dataclasses as dc
import enum

from solforge.common.env import (
    parse_bool,
    parse_positive_float,
    parse_positive_int,
    read_str,
)


class PayoutMode(enum.StrEnum):
    """How the webhook pipeline hands a claimed bounty to the executor."""

    INLINE = "inline"
    QUEUE = "queue"


@dc.dataclass(frozen=True, slots=True)
class PaymentConfig:
    """Settings for the payment executor.

    Attributes
    ----------
    auto_payment
        When False, merged pull requests still move bounties to ``claimed``
        but no payout is dispatched.
    payout_mode
        ``inline`` awaits the executor inside the webhook request; ``queue``
        sends a Dramatiq message.
    max_attempts
        Attempts per bounty before it is marked ``failed``. Default is 3.
    confirmation_timeout_s
        Time to wait for one submitted transaction to confirm.
    budget_s
        Wall-clock budget for all attempts on one bounty.
    retry_delay_s
        Pause between attempts.
    stale_lease_s
        Age after which a ``processing`` lease is considered abandoned by a
        crashed worker and may be taken over.
        It must exceed the longest run a live executor can make between two
        lease renewals, ``budget_s + max_attempts * confirmation_timeout_s``.

    """

    auto_payment: bool = True
    payout_mode: PayoutMode = PayoutMode.QUEUE
    max_attempts: int = 3
    confirmation_timeout_s: float = 60.0
    budget_s: float = 300.0
    retry_delay_s: float = 2.0
    stale_lease_s: float = 600.0

    def __post_init__(self) -> None:
        """Reject a lease age that a live executor could outlast."""
        longest_run = self.budget_s + self.max_attempts * self.confirmation_timeout_s
        if self.stale_lease_s <= longest_run:
            msg = (
                f"stale_lease_s ({self.stale_lease_s:g}) must exceed budget_s + "
                f"max_attempts * confirmation_timeout_s ({longest_run:g})"
            )
            raise ValueError(msg)

    @classmethod
    def from_env(cls) -> PaymentConfig:
        """Create configuration from ``SOLFORGE_*`` environment variables.

        Raises
        ------
        ValueError
            If a variable cannot be parsed, ``SOLFORGE_PAYOUT_MODE`` is not
            ``inline`` or ``queue``, or the stale lease age is too short for
            the budget.

        """
        raw_mode = (read_str("SOLFORGE_PAYOUT_MODE", "queue") or "queue").lower()
        try:
            payout_mode = PayoutMode(raw_mode)
        except ValueError as exc:
            msg = f"SOLFORGE_PAYOUT_MODE must be inline or queue, got: {raw_mode!r}"
            raise ValueError(msg) from exc
        return cls(
            auto_payment=parse_bool("SOLFORGE_AUTO_PAYMENT", default=True),
            payout_mode=payout_mode,
            max_attempts=parse_positive_int("SOLFORGE_PAYMENT_MAX_ATTEMPTS", 3),
            confirmation_timeout_s=parse_positive_float(
                "SOLFORGE_CONFIRMATION_TIMEOUT_S", 60.0
            ),
            budget_s=parse_positive_float("SOLFORGE_PAYMENT_BUDGET_S", 300.0),
            retry_delay_s=parse_positive_float("SOLFORGE_PAYMENT_RETRY_DELAY_S", 2.0),
            stale_lease_s=parse_positive_float("SOLFORGE_PAYMENT_STALE_LEASE_S", 600.0),
        )
