"""Hand claimed bounties to the payment executor."""

from __future__ import annotations

import typing as typ

from ._broker import ensure_broker_configured
from .config import PayoutMode

if typ.TYPE_CHECKING:
    from .executor import PaymentExecutor, PaymentOutcome


class PayoutDispatcher(typ.Protocol):
    """Decide how a payout for a newly claimed bounty is run."""

    mode: PayoutMode

    async def dispatch(self, bounty_id: str) -> PaymentOutcome | None:
        """Start the payout; return its outcome when it ran inline."""
        ...


class InlinePayoutDispatcher:
    """Await the executor inside the caller's request."""

    mode = PayoutMode.INLINE

    def __init__(self, executor: PaymentExecutor) -> None:
        """Bind the dispatcher to an executor."""
        self._executor = executor

    async def dispatch(self, bounty_id: str) -> PaymentOutcome | None:
        """Run the payout to completion and return its outcome."""
        return await self._executor.execute(bounty_id)


class QueuePayoutDispatcher:
    """Enqueue :func:`execute_payout_job` on the Dramatiq broker."""

    mode = PayoutMode.QUEUE

    def __init__(self, database_url: str) -> None:
        """Record the database URL the worker should connect to."""
        self._database_url = database_url

    async def dispatch(self, bounty_id: str) -> PaymentOutcome | None:
        """Send the payout message; the worker reports its own outcome.

        Raises
        ------
        RuntimeError
            If no Dramatiq broker is configured for this process.

        """
        ensure_broker_configured()
        # Declaring the actors needs the broker, so inline mode never loads them.
        from . import actor

        actor.execute_payout_job.send(
            database_url=self._database_url, bounty_id=bounty_id
        )
        return None
