"""Drive a claimed bounty's payout to completion exactly once.

The executor owns the payment attempt rows and the bounty's payment
sub-record. It relies on three guards to avoid double payment:

* a confirmed attempt with the same fingerprint short-circuits to
  ``completed`` without touching the chain;
* the per-bounty payment lease (a compare-and-swap of ``payment_status`` to
  ``processing``) admits one executor at a time;
* before each retry, every earlier signed attempt is settled on chain, and
  no new transfer is built while one of them may still land.

Usage
-----
>>> executor = PaymentExecutor(store, ledger, ledger_client, state_machine)
>>> outcome = await executor.execute(bounty_id)
>>> outcome.result
<PayoutResult.COMPLETED: 'completed'>

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import datetime as dt
import enum
import typing as typ

from solforge.bounties.errors import BountyNotFoundError, IllegalTransitionError
from solforge.bounties.models import (
    BountyState,
    ClaimEvent,
    PaymentStatus,
    TransitionFields,
)
from solforge.chain.client import SignatureState, TransferRequest
from solforge.chain.errors import (
    ConfirmationTimeoutError,
    FeeCeilingExceededError,
    RpcUnavailableError,
    SubmissionFailedError,
)
from solforge.common.time import utcnow
from solforge.errors import SolForgeError
from solforge.logging import get_logger, log_debug, log_warning
from solforge.reconciliation.observability import ReconciliationEventLogger

from .config import PaymentConfig
from .errors import PaymentPreconditionError, RetryExhaustedError
from .fingerprint import payment_fingerprint

if typ.TYPE_CHECKING:
    from solforge.bounties.models import Bounty
    from solforge.bounties.state_machine import ClaimStateMachine
    from solforge.bounties.store import BountyStore
    from solforge.chain.client import LedgerClient
    from solforge.ledger.store import PaymentAttempt, ReconciliationLedger

logger = get_logger(__name__)


class PayoutResult(enum.StrEnum):
    """What a call to the executor achieved."""

    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    UNSETTLED = "unsettled"


@dc.dataclass(frozen=True, slots=True)
class PaymentOutcome:
    """Result of :meth:`PaymentExecutor.execute` for one bounty."""

    bounty_id: str
    result: PayoutResult
    signature: str | None = None
    attempts: int = 0
    last_error: str | None = None
    detail: str = ""


@dc.dataclass(frozen=True, slots=True)
class _Settlement:
    confirmed: PaymentAttempt | None = None
    in_flight: tuple[str, ...] = ()


class PaymentExecutor:
    """Pay the claimant of a ``claimed`` bounty from the payout authority."""

    def __init__(  # noqa: PLR0913
        self,
        store: BountyStore,
        ledger: ReconciliationLedger,
        ledger_client: LedgerClient,
        state_machine: ClaimStateMachine,
        *,
        config: PaymentConfig | None = None,
        max_fee_lamports: int = 0,
        event_logger: ReconciliationEventLogger | None = None,
    ) -> None:
        """Wire the executor to storage, the ledger and the chain.

        Parameters
        ----------
        store
            Bounty persistence port.
        ledger
            Reconciliation ledger holding payment attempts.
        ledger_client
            Chain access used to build, simulate, submit and confirm.
        state_machine
            Applies ``PAYMENT_CONFIRMED`` and ``RETRIES_EXHAUSTED``.
        config
            Retry ceiling, timeouts and budget.
        max_fee_lamports
            Ceiling on the quoted network fee; ``0`` disables the check.
        event_logger
            Structured event sink; a default logger is created when omitted.

        """
        self._store = store
        self._ledger = ledger
        self._client = ledger_client
        self._state_machine = state_machine
        self._config = config or PaymentConfig()
        self._max_fee_lamports = max_fee_lamports
        self._events = event_logger or ReconciliationEventLogger()

    async def _load(self, bounty_id: str) -> Bounty:
        bounty = await self._store.get(bounty_id)
        if bounty is None:
            raise BountyNotFoundError(bounty_id)
        return bounty

    @staticmethod
    def _not_payable(bounty: Bounty) -> PaymentOutcome | None:
        if bounty.state is BountyState.COMPLETED:
            return PaymentOutcome(
                bounty_id=bounty.id,
                result=PayoutResult.ALREADY_COMPLETED,
                signature=bounty.payment.signature,
                attempts=bounty.payment.attempts,
            )
        if bounty.state is not BountyState.CLAIMED:
            return PaymentOutcome(
                bounty_id=bounty.id,
                result=PayoutResult.SKIPPED,
                attempts=bounty.payment.attempts,
                detail=f"bounty is {bounty.state.value}",
            )
        if bounty.claimant_wallet is None:
            raise PaymentPreconditionError.missing_wallet(bounty.id)
        return None

    async def execute(self, bounty_id: str) -> PaymentOutcome:
        """Pay the claimant of *bounty_id* unless that already happened.

        Returns ``SKIPPED`` when the bounty is not ``claimed`` or another
        executor holds the payment lease.

        Raises
        ------
        BountyNotFoundError
            If the bounty does not exist.
        PaymentPreconditionError
            If the claimed bounty has no claimant wallet.

        """
        bounty = await self._load(bounty_id)
        if (outcome := self._not_payable(bounty)) is not None:
            return outcome

        fingerprint = payment_fingerprint(bounty)
        confirmed = await self._ledger.find_confirmed_attempt(bounty.id, fingerprint)
        if confirmed is not None and confirmed.signature is not None:
            return await self._complete(
                bounty, confirmed.signature, bounty.payment.attempts
            )

        if not await self._store.acquire_payment_lease(bounty.id):
            log_debug(logger, "Payment lease for %s is held elsewhere", bounty.id)
            return PaymentOutcome(
                bounty_id=bounty.id,
                result=PayoutResult.SKIPPED,
                attempts=bounty.payment.attempts,
                detail="payment lease held by another executor",
            )
        return await self._run(bounty, fingerprint)

    async def reconcile(self, bounty_id: str) -> PaymentOutcome:
        """Resume the payout of a bounty whose worker may have crashed.

        Earlier signed attempts are settled on chain first. A landed one
        completes the bounty; one that may still land blocks any retry.
        Only when every earlier signature is provably dropped is a stale
        ``processing`` lease taken over and the payout retried.
        """
        bounty = await self._load(bounty_id)
        if (outcome := self._not_payable(bounty)) is not None:
            return outcome

        fingerprint = payment_fingerprint(bounty)
        confirmed = await self._ledger.find_confirmed_attempt(bounty.id, fingerprint)
        if confirmed is not None and confirmed.signature is not None:
            return await self._complete(
                bounty, confirmed.signature, bounty.payment.attempts
            )

        loop = asyncio.get_running_loop()
        settlement = await self._settle(
            bounty, loop.time() + self._config.confirmation_timeout_s
        )
        if settlement.confirmed is not None:
            return await self._complete(
                bounty,
                typ.cast("str", settlement.confirmed.signature),
                bounty.payment.attempts,
            )
        if settlement.in_flight:
            return PaymentOutcome(
                bounty_id=bounty.id,
                result=PayoutResult.UNSETTLED,
                attempts=bounty.payment.attempts,
                detail=f"transfer {settlement.in_flight[0]} may still land",
            )

        if bounty.payment.status is PaymentStatus.PENDING:
            return await self.execute(bounty_id)
        stale_before = utcnow() - dt.timedelta(seconds=self._config.stale_lease_s)
        if not await self._store.acquire_payment_lease(
            bounty.id, stale_before=stale_before
        ):
            return PaymentOutcome(
                bounty_id=bounty.id,
                result=PayoutResult.SKIPPED,
                attempts=bounty.payment.attempts,
                detail="payment lease is still live",
            )
        return await self._run(bounty, fingerprint)

    async def reconcile_stalled(self) -> list[PaymentOutcome]:
        """Reconcile every claimed bounty whose payout never finished."""
        stale_before = utcnow() - dt.timedelta(seconds=self._config.stale_lease_s)
        return [
            await self.reconcile(bounty_id)
            for bounty_id in await self._store.list_stalled_payments(stale_before)
        ]

    async def _await_pending(self, signature: str, deadline: float) -> SignatureState:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            return SignatureState.PENDING
        try:
            await self._client.confirm(
                signature,
                timeout_s=min(self._config.confirmation_timeout_s, remaining),
            )
        except ConfirmationTimeoutError:
            return SignatureState.PENDING
        except SubmissionFailedError:
            return SignatureState.FAILED
        return SignatureState.CONFIRMED

    async def _expired(self, attempt: PaymentAttempt) -> bool:
        # Without a recorded expiry height the transfer can never be ruled out.
        if attempt.last_valid_block_height is None:
            return False
        return await self._client.block_height() > attempt.last_valid_block_height

    async def _settle(self, bounty: Bounty, deadline: float) -> _Settlement:
        """Sort earlier signed attempts into landed, dropped and in flight.

        Pending signatures are waited on until *deadline*. An unknown
        signature counts as dropped only once the chain has passed the
        block height its blockhash was valid for.
        """
        in_flight: list[str] = []
        for attempt in await self._ledger.list_unconfirmed_signatures(bounty.id):
            signature = typ.cast("str", attempt.signature)
            try:
                status = await self._client.signature_status(signature)
                state = status.state
                if state is SignatureState.PENDING:
                    state = await self._await_pending(signature, deadline)
                dropped = state is SignatureState.FAILED or (
                    state is SignatureState.UNKNOWN and await self._expired(attempt)
                )
            except RpcUnavailableError as exc:
                log_warning(
                    logger,
                    "Could not settle earlier signature %s for %s: %s",
                    signature,
                    bounty.id,
                    exc,
                )
                in_flight.append(signature)
                continue
            if state is SignatureState.CONFIRMED:
                recovered = await self._ledger.mark_attempt_confirmed(attempt.id)
                self._events.log_payment_recovered(
                    bounty_id=bounty.id, signature=signature
                )
                return _Settlement(confirmed=recovered)
            if dropped:
                reason = (
                    (status.error or "transaction failed on chain")
                    if state is SignatureState.FAILED
                    else "blockhash expired before the transaction landed"
                )
                await self._ledger.mark_attempt_dropped(attempt.id, reason)
                log_debug(logger, "Signature %s dropped: %s", signature, reason)
            else:
                in_flight.append(signature)
        return _Settlement(in_flight=tuple(in_flight))

    async def _attempt(
        self, attempt: PaymentAttempt, request: TransferRequest
    ) -> str:
        prepared = await self._client.build_transfer(request)
        if self._max_fee_lamports and prepared.fee_lamports > self._max_fee_lamports:
            raise FeeCeilingExceededError(
                prepared.fee_lamports, self._max_fee_lamports
            )
        await self._client.simulate(prepared)
        # The signature is fixed at signing; record it before broadcast.
        await self._ledger.mark_attempt_submitted(
            attempt.id,
            prepared.signature,
            last_valid_block_height=prepared.last_valid_block_height,
        )
        signature = await self._client.submit(prepared)
        await self._client.confirm(
            signature, timeout_s=self._config.confirmation_timeout_s
        )
        await self._ledger.mark_attempt_confirmed(attempt.id)
        return signature

    async def _run(self, bounty: Bounty, fingerprint: str) -> PaymentOutcome:
        """Settle, then attempt, until paid, out of attempts or out of budget.

        A new transfer is only built while no earlier one can still land.
        The bounty is failed only when every signed attempt is provably
        dropped; if the budget runs out first the lease is left for
        :meth:`reconcile`.
        """
        request = TransferRequest(
            recipient=typ.cast("str", bounty.claimant_wallet),
            amount=bounty.reward.amount,
            decimals=bounty.reward.decimals,
            mint=bounty.reward.mint,
        )
        loop = asyncio.get_running_loop()
        budget_ends = loop.time() + self._config.budget_s
        attempts = len(await self._ledger.attempts_for(bounty.id))
        last_error = bounty.payment.last_error or ""
        retrying = True

        while True:
            await self._store.renew_payment_lease(bounty.id)
            settlement = await self._settle(bounty, budget_ends)
            if settlement.confirmed is not None:
                return await self._complete(
                    bounty, typ.cast("str", settlement.confirmed.signature), attempts
                )

            remaining = budget_ends - loop.time()
            if settlement.in_flight:
                if remaining <= 0:
                    return await self._leave_unsettled(
                        bounty, attempts, settlement.in_flight
                    )
                await asyncio.sleep(min(self._config.retry_delay_s, remaining))
                continue
            if not retrying or attempts >= self._config.max_attempts:
                break
            if remaining <= 0:
                last_error = last_error or "payment budget exhausted"
                break

            attempt = await self._ledger.start_attempt(bounty.id, fingerprint)
            attempts += 1
            self._events.log_attempt_started(
                bounty_id=bounty.id, attempt_number=attempt.attempt_number
            )
            try:
                async with asyncio.timeout(remaining):
                    signature = await self._attempt(attempt, request)
            except SolForgeError as exc:
                last_error = str(exc)
                await self._record_failure(
                    bounty,
                    attempt,
                    exc,
                    attempts,
                    timed_out=isinstance(exc, ConfirmationTimeoutError),
                )
                retrying = exc.retryable
            except TimeoutError as exc:
                last_error = (
                    f"payment budget of {self._config.budget_s:g}s exhausted"
                )
                await self._record_failure(
                    bounty, attempt, exc, attempts, timed_out=True, message=last_error
                )
                retrying = False
            else:
                await self._store.record_payment_progress(
                    bounty.id, attempts=attempts, last_error=None
                )
                return await self._complete(bounty, signature, attempts)

            if retrying and attempts < self._config.max_attempts:
                await asyncio.sleep(
                    min(self._config.retry_delay_s, max(budget_ends - loop.time(), 0))
                )

        return await self._fail(bounty, attempts, last_error)

    async def _leave_unsettled(
        self, bounty: Bounty, attempts: int, in_flight: tuple[str, ...]
    ) -> PaymentOutcome:
        detail = f"transfer {in_flight[0]} may still land"
        await self._store.record_payment_progress(
            bounty.id, attempts=attempts, last_error=detail
        )
        log_warning(
            logger,
            "Payment budget for %s ran out with %d transfer(s) in flight",
            bounty.id,
            len(in_flight),
        )
        return PaymentOutcome(
            bounty_id=bounty.id,
            result=PayoutResult.UNSETTLED,
            attempts=attempts,
            last_error=detail,
            detail=detail,
        )

    async def _record_failure(  # noqa: PLR0913
        self,
        bounty: Bounty,
        attempt: PaymentAttempt,
        exc: BaseException,
        attempts: int,
        *,
        timed_out: bool,
        message: str | None = None,
    ) -> None:
        error = message or str(exc)
        await self._ledger.mark_attempt_failed(attempt.id, error, timed_out=timed_out)
        await self._store.record_payment_progress(
            bounty.id, attempts=attempts, last_error=error
        )
        self._events.log_attempt_failed(
            bounty_id=bounty.id, attempt_number=attempt.attempt_number, error=exc
        )

    async def _complete(
        self, bounty: Bounty, signature: str, attempts: int
    ) -> PaymentOutcome:
        try:
            await self._state_machine.apply(
                bounty,
                ClaimEvent.PAYMENT_CONFIRMED,
                TransitionFields(
                    payment_status=PaymentStatus.COMPLETED,
                    payment_signature=signature,
                    payment_completed_at=utcnow(),
                ),
            )
        except IllegalTransitionError:
            current = await self._load(bounty.id)
            if current.state is not BountyState.COMPLETED:
                raise
            return PaymentOutcome(
                bounty_id=bounty.id,
                result=PayoutResult.ALREADY_COMPLETED,
                signature=current.payment.signature,
                attempts=current.payment.attempts,
            )
        self._events.log_payment_completed(
            bounty_id=bounty.id, signature=signature, attempts=attempts
        )
        return PaymentOutcome(
            bounty_id=bounty.id,
            result=PayoutResult.COMPLETED,
            signature=signature,
            attempts=attempts,
        )

    async def _fail(
        self, bounty: Bounty, attempts: int, last_error: str
    ) -> PaymentOutcome:
        await self._state_machine.apply(
            bounty,
            ClaimEvent.RETRIES_EXHAUSTED,
            TransitionFields(
                payment_status=PaymentStatus.FAILED,
                payment_last_error=last_error,
                payment_failed_at=utcnow(),
            ),
        )
        self._events.log_payment_failed(
            RetryExhaustedError(bounty.id, attempts, last_error)
        )
        return PaymentOutcome(
            bounty_id=bounty.id,
            result=PayoutResult.FAILED,
            attempts=attempts,
            last_error=last_error,
        )
