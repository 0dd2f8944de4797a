"""Reconciliation ledger port and its SQLAlchemy implementation.

The ledger answers "has this already happened": whether a webhook delivery
was processed, and whether a payout with a given fingerprint was confirmed.
Attempt rows are written before each chain call so a crash between steps
leaves a trail the executor can reconcile.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from solforge.common.time import utcnow
from solforge.logging import get_logger, log_debug

from .errors import AttemptConflictError, AttemptNotFoundError
from .storage import AttemptStatus, DeliveryRecord, PaymentAttemptRecord

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class PaymentAttempt:
    """Immutable snapshot of a payment attempt row."""

    id: int
    bounty_id: str
    attempt_number: int
    fingerprint: str
    status: AttemptStatus
    signature: str | None
    last_valid_block_height: int | None
    error: str | None
    created_at: dt.datetime
    updated_at: dt.datetime


def _attempt_from_record(record: PaymentAttemptRecord) -> PaymentAttempt:
    return PaymentAttempt(
        id=record.id,
        bounty_id=record.bounty_id,
        attempt_number=record.attempt_number,
        fingerprint=record.fingerprint,
        status=record.status,
        signature=record.signature,
        last_valid_block_height=record.last_valid_block_height,
        error=record.error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class ReconciliationLedger(typ.Protocol):
    """Idempotency records for deliveries and payout attempts."""

    async def has_delivery(self, delivery_id: str) -> bool:
        """Return True when *delivery_id* was already processed."""
        ...

    async def record_delivery(
        self, delivery_id: str, event_name: str, outcome: str
    ) -> bool:
        """Record a processed delivery; return False for a duplicate."""
        ...

    async def start_attempt(self, bounty_id: str, fingerprint: str) -> PaymentAttempt:
        """Open the next numbered attempt in ``building``."""
        ...

    async def mark_attempt_submitted(
        self,
        attempt_id: int,
        signature: str,
        *,
        last_valid_block_height: int | None = None,
    ) -> PaymentAttempt:
        """Record the signature of a transaction about to be broadcast."""
        ...

    async def mark_attempt_confirmed(self, attempt_id: int) -> PaymentAttempt:
        """Mark an attempt confirmed on chain."""
        ...

    async def mark_attempt_failed(
        self, attempt_id: int, error: str, *, timed_out: bool = False
    ) -> PaymentAttempt:
        """Mark an attempt failed or timed out with its error."""
        ...

    async def mark_attempt_dropped(
        self, attempt_id: int, reason: str
    ) -> PaymentAttempt:
        """Mark a signed attempt as one that can no longer land."""
        ...

    async def find_confirmed_attempt(
        self, bounty_id: str, fingerprint: str
    ) -> PaymentAttempt | None:
        """Return the confirmed attempt for this payout, if any."""
        ...

    async def list_unconfirmed_signatures(self, bounty_id: str) -> list[PaymentAttempt]:
        """Return signed attempts that may still land on chain."""
        ...

    async def attempts_for(self, bounty_id: str) -> list[PaymentAttempt]:
        """Return every attempt for *bounty_id* in order."""
        ...


class SqlReconciliationLedger:
    """SQLAlchemy-backed :class:`ReconciliationLedger`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Bind the ledger to an async session factory."""
        self._session_factory = session_factory

    async def has_delivery(self, delivery_id: str) -> bool:
        """Return True when *delivery_id* is present."""
        async with self._session_factory() as session:
            found = await session.scalar(
                select(DeliveryRecord.id).where(
                    DeliveryRecord.delivery_id == delivery_id
                )
            )
            return found is not None

    async def record_delivery(
        self, delivery_id: str, event_name: str, outcome: str
    ) -> bool:
        """Insert a delivery row.

        The unique constraint on ``delivery_id`` collapses concurrent
        redeliveries to one row; the loser gets ``False``.
        """
        async with self._session_factory() as session:
            session.add(
                DeliveryRecord(
                    delivery_id=delivery_id, event_name=event_name, outcome=outcome
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                log_debug(logger, "Delivery %s already recorded", delivery_id)
                return False
            return True

    async def start_attempt(self, bounty_id: str, fingerprint: str) -> PaymentAttempt:
        """Allocate the next attempt number for *bounty_id*.

        Raises
        ------
        AttemptConflictError
            If another writer took the same number first.

        """
        async with self._session_factory() as session:
            latest = await session.scalar(
                select(func.max(PaymentAttemptRecord.attempt_number)).where(
                    PaymentAttemptRecord.bounty_id == bounty_id
                )
            )
            number = (latest or 0) + 1
            now = utcnow()
            record = PaymentAttemptRecord(
                bounty_id=bounty_id,
                attempt_number=number,
                fingerprint=fingerprint,
                status=AttemptStatus.BUILDING,
                created_at=now,
                updated_at=now,
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise AttemptConflictError.for_attempt(bounty_id, number) from exc
            return _attempt_from_record(record)

    async def _update(
        self,
        attempt_id: int,
        status: AttemptStatus,
        **values: object,
    ) -> PaymentAttempt:
        async with self._session_factory() as session:
            record = await session.get(PaymentAttemptRecord, attempt_id)
            if record is None:
                raise AttemptNotFoundError(attempt_id)
            record.status = status
            for name, value in values.items():
                setattr(record, name, value)
            record.updated_at = utcnow()
            await session.commit()
            return _attempt_from_record(record)

    async def mark_attempt_submitted(
        self,
        attempt_id: int,
        signature: str,
        *,
        last_valid_block_height: int | None = None,
    ) -> PaymentAttempt:
        """Store the signature and its blockhash expiry ahead of broadcast."""
        return await self._update(
            attempt_id,
            AttemptStatus.SUBMITTED,
            signature=signature,
            last_valid_block_height=last_valid_block_height,
        )

    async def mark_attempt_confirmed(self, attempt_id: int) -> PaymentAttempt:
        """Mark the attempt ``confirmed`` and clear any error."""
        return await self._update(attempt_id, AttemptStatus.CONFIRMED, error=None)

    async def mark_attempt_failed(
        self, attempt_id: int, error: str, *, timed_out: bool = False
    ) -> PaymentAttempt:
        """Mark the attempt ``failed`` or ``timed_out``."""
        status = AttemptStatus.TIMED_OUT if timed_out else AttemptStatus.FAILED
        return await self._update(attempt_id, status, error=error)

    async def mark_attempt_dropped(
        self, attempt_id: int, reason: str
    ) -> PaymentAttempt:
        """Mark the attempt ``dropped`` so it is no longer re-checked on chain."""
        return await self._update(attempt_id, AttemptStatus.DROPPED, error=reason)

    async def _select(self, *criteria: typ.Any) -> list[PaymentAttempt]:  # noqa: ANN401
        async with self._session_factory() as session:
            records = (
                await session.scalars(
                    select(PaymentAttemptRecord)
                    .where(*criteria)
                    .order_by(PaymentAttemptRecord.attempt_number)
                )
            ).all()
            return [_attempt_from_record(record) for record in records]

    async def find_confirmed_attempt(
        self, bounty_id: str, fingerprint: str
    ) -> PaymentAttempt | None:
        """Return the confirmed attempt matching *fingerprint*."""
        attempts = await self._select(
            PaymentAttemptRecord.bounty_id == bounty_id,
            PaymentAttemptRecord.fingerprint == fingerprint,
            PaymentAttemptRecord.status == AttemptStatus.CONFIRMED,
        )
        return attempts[0] if attempts else None

    async def list_unconfirmed_signatures(self, bounty_id: str) -> list[PaymentAttempt]:
        """Return signed attempts that are neither ``confirmed`` nor ``dropped``."""
        return await self._select(
            PaymentAttemptRecord.bounty_id == bounty_id,
            PaymentAttemptRecord.signature.is_not(None),
            PaymentAttemptRecord.status.not_in(
                (AttemptStatus.CONFIRMED, AttemptStatus.DROPPED)
            ),
        )

    async def attempts_for(self, bounty_id: str) -> list[PaymentAttempt]:
        """Return all attempts for *bounty_id* by attempt number."""
        return await self._select(PaymentAttemptRecord.bounty_id == bounty_id)
