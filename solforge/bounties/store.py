"""Persistence port for bounties and its SQLAlchemy implementation.

Every state change is a compare-and-swap: the ``UPDATE`` is guarded by the
expected current state and reports whether exactly one row changed. Two
workers racing on the same bounty therefore cannot both win.
"""

from __future__ import annotations

import typing as typ

from sqlalchemy import select, update

from solforge.common.time import utcnow

from .models import (
    Bounty,
    BountyState,
    NewBounty,
    PaymentRecord,
    PaymentStatus,
    Reward,
    TransitionFields,
)
from .storage import BountyRecord

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from sqlalchemy.sql.dml import Update


class BountyStore(typ.Protocol):
    """Storage operations required by the claim pipeline."""

    async def create(self, new: NewBounty) -> Bounty:
        """Persist a new ``open`` bounty."""
        ...

    async def get(self, bounty_id: str) -> Bounty | None:
        """Return the bounty or ``None``."""
        ...

    async def find_by_pull_request(
        self, repository_full_name: str, pr_number: int
    ) -> list[Bounty]:
        """Return bounties whose stored PR reference matches."""
        ...

    async def find_by_issue(
        self, repository_full_name: str, issue_number: int
    ) -> list[Bounty]:
        """Return bounties attached to the given issue."""
        ...

    async def compare_and_set_state(
        self,
        bounty_id: str,
        expected: BountyState,
        new: BountyState,
        fields: TransitionFields | None = None,
    ) -> bool:
        """Move ``expected`` to ``new`` atomically; return False if it lost."""
        ...

    async def acquire_payment_lease(
        self, bounty_id: str, *, stale_before: dt.datetime | None = None
    ) -> bool:
        """Mark the payment ``processing`` if nobody else holds it."""
        ...

    async def renew_payment_lease(self, bounty_id: str) -> bool:
        """Refresh the start time of a ``processing`` lease."""
        ...

    async def record_payment_progress(
        self, bounty_id: str, *, attempts: int, last_error: str | None
    ) -> None:
        """Update the attempt count and last error of the payment record."""
        ...

    async def list_stalled_payments(self, stale_before: dt.datetime) -> list[str]:
        """Return IDs of claimed bounties whose payment lease went stale."""
        ...


def bounty_from_record(record: BountyRecord) -> Bounty:
    """Map an ORM row onto the immutable domain snapshot."""
    return Bounty(
        id=record.id,
        title=record.title,
        description=record.description,
        reward=Reward(
            amount=record.amount,
            currency=record.currency,
            decimals=record.token_decimals,
            mint=record.token_mint,
        ),
        repository_full_name=record.repository_full_name,
        repository_url=record.repository_url,
        issue_url=record.issue_url,
        issue_number=record.issue_number,
        creator_id=record.creator_id,
        creator_wallet=record.creator_wallet,
        state=record.state,
        created_at=record.created_at,
        updated_at=record.updated_at,
        version=record.version,
        payment=PaymentRecord(
            status=record.payment_status,
            signature=record.payment_signature,
            attempts=record.payment_attempts,
            last_error=record.payment_last_error,
            started_at=record.payment_started_at,
            completed_at=record.payment_completed_at,
            failed_at=record.payment_failed_at,
        ),
        pr_url=record.pr_url,
        pr_number=record.pr_number,
        claimant_login=record.claimant_login,
        claimant_wallet=record.claimant_wallet,
        deadline=record.deadline,
    )


class SqlBountyStore:
    """SQLAlchemy-backed :class:`BountyStore`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Bind the store to an async session factory."""
        self._session_factory = session_factory

    async def create(self, new: NewBounty) -> Bounty:
        """Insert a new bounty in state ``open``."""
        now = utcnow()
        record = BountyRecord(
            title=new.title,
            description=new.description,
            amount=new.reward.amount,
            currency=new.reward.currency,
            token_mint=new.reward.mint,
            token_decimals=new.reward.decimals,
            repository_full_name=new.repository_full_name,
            repository_url=new.repository_url,
            issue_url=new.issue_url,
            issue_number=new.issue_number,
            creator_id=new.creator_id,
            creator_wallet=new.creator_wallet,
            state=BountyState.OPEN,
            deadline=new.deadline,
            payment_status=PaymentStatus.PENDING,
            payment_attempts=0,
            created_at=now,
            updated_at=now,
            version=1,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            return bounty_from_record(record)

    async def get(self, bounty_id: str) -> Bounty | None:
        """Return the bounty with *bounty_id*, or ``None``."""
        async with self._session_factory() as session:
            record = await session.get(BountyRecord, bounty_id)
            return bounty_from_record(record) if record is not None else None

    async def _select(self, *criteria: typ.Any) -> list[Bounty]:  # noqa: ANN401
        async with self._session_factory() as session:
            records = (
                await session.scalars(
                    select(BountyRecord)
                    .where(*criteria)
                    .order_by(BountyRecord.created_at)
                )
            ).all()
            return [bounty_from_record(record) for record in records]

    async def find_by_pull_request(
        self, repository_full_name: str, pr_number: int
    ) -> list[Bounty]:
        """Return bounties whose stored PR is ``repository#pr_number``."""
        return await self._select(
            BountyRecord.repository_full_name == repository_full_name,
            BountyRecord.pr_number == pr_number,
        )

    async def find_by_issue(
        self, repository_full_name: str, issue_number: int
    ) -> list[Bounty]:
        """Return bounties attached to ``repository#issue_number``."""
        return await self._select(
            BountyRecord.repository_full_name == repository_full_name,
            BountyRecord.issue_number == issue_number,
        )

    async def _execute_guarded(self, statement: Update) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                statement.execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1  # type: ignore[attr-defined]  # CursorResult

    async def compare_and_set_state(
        self,
        bounty_id: str,
        expected: BountyState,
        new: BountyState,
        fields: TransitionFields | None = None,
    ) -> bool:
        """Apply a guarded state update; return True when this call won."""
        values = fields.as_values() if fields is not None else {}
        statement = (
            update(BountyRecord)
            .where(BountyRecord.id == bounty_id, BountyRecord.state == expected)
            .values(
                state=new,
                version=BountyRecord.version + 1,
                updated_at=utcnow(),
                **values,
            )
        )
        return await self._execute_guarded(statement)

    async def acquire_payment_lease(
        self, bounty_id: str, *, stale_before: dt.datetime | None = None
    ) -> bool:
        """Take the per-bounty payment lease.

        A ``pending`` payment is always claimable. With *stale_before*, a
        ``processing`` lease started before that instant may be taken over;
        this is how crash recovery resumes an abandoned payout.
        """
        guard = BountyRecord.payment_status == PaymentStatus.PENDING
        if stale_before is not None:
            guard = (BountyRecord.payment_status == PaymentStatus.PROCESSING) & (
                BountyRecord.payment_started_at < stale_before
            )
        now = utcnow()
        statement = (
            update(BountyRecord)
            .where(
                BountyRecord.id == bounty_id,
                BountyRecord.state == BountyState.CLAIMED,
                guard,
            )
            .values(
                payment_status=PaymentStatus.PROCESSING,
                payment_started_at=now,
                version=BountyRecord.version + 1,
                updated_at=now,
            )
        )
        return await self._execute_guarded(statement)

    async def renew_payment_lease(self, bounty_id: str) -> bool:
        """Push back the staleness clock of a held payment lease.

        A running executor renews on every loop so crash recovery never sees
        its lease as abandoned. Returns False when the lease is not held.
        """
        now = utcnow()
        statement = (
            update(BountyRecord)
            .where(
                BountyRecord.id == bounty_id,
                BountyRecord.payment_status == PaymentStatus.PROCESSING,
            )
            .values(payment_started_at=now, updated_at=now)
        )
        return await self._execute_guarded(statement)

    async def record_payment_progress(
        self, bounty_id: str, *, attempts: int, last_error: str | None
    ) -> None:
        """Persist the attempt counter and last error while processing."""
        statement = (
            update(BountyRecord)
            .where(BountyRecord.id == bounty_id)
            .values(
                payment_attempts=attempts,
                payment_last_error=last_error,
                updated_at=utcnow(),
            )
        )
        await self._execute_guarded(statement)

    async def list_stalled_payments(self, stale_before: dt.datetime) -> list[str]:
        """Return claimed bounties stuck in ``processing`` or never started."""
        async with self._session_factory() as session:
            ids = (
                await session.scalars(
                    select(BountyRecord.id).where(
                        BountyRecord.state == BountyState.CLAIMED,
                        (BountyRecord.payment_status == PaymentStatus.PENDING)
                        | (
                            (BountyRecord.payment_status == PaymentStatus.PROCESSING)
                            & (BountyRecord.payment_started_at < stale_before)
                        ),
                    )
                )
            ).all()
            return list(ids)
