"""Persistence models for the reconciliation ledger.

The ledger shares the bounty metadata so a single ``create_all`` builds
every table.
"""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ

from sqlalchemy import (
    BigInteger,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from solforge.bounties.storage import Base, UTCDateTime
from solforge.common.time import utcnow

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


class AttemptStatus(enum.StrEnum):
    """Progress of a single payout attempt."""

    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    DROPPED = "dropped"


class DeliveryRecord(Base):
    """Append-only record of a processed webhook delivery."""

    __tablename__ = "webhook_deliveries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    delivery_id: Mapped[str] = mapped_column(String(64), unique=True)
    event_name: Mapped[str] = mapped_column(String(64))
    outcome: Mapped[str] = mapped_column(String(32))
    recorded_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class PaymentAttemptRecord(Base):
    """One build/simulate/submit/confirm cycle for a bounty payout."""

    __tablename__ = "payment_attempts"
    __table_args__ = (
        UniqueConstraint(
            "bounty_id", "attempt_number", name="uq_payment_attempts_number"
        ),
        Index("ix_payment_attempts_fingerprint", "bounty_id", "fingerprint"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    bounty_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bounties.id", ondelete="RESTRICT")
    )
    attempt_number: Mapped[int] = mapped_column(Integer)
    fingerprint: Mapped[str] = mapped_column(String(64))
    status: Mapped[AttemptStatus] = mapped_column(
        Enum(
            AttemptStatus,
            native_enum=False,
            values_callable=lambda members: [member.value for member in members],
            validate_strings=True,
            length=16,
        ),
        default=AttemptStatus.BUILDING,
    )
    signature: Mapped[str | None] = mapped_column(String(128), default=None)
    last_valid_block_height: Mapped[int | None] = mapped_column(
        BigInteger(), default=None
    )
    error: Mapped[str | None] = mapped_column(Text(), default=None)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


async def init_storage(engine: AsyncEngine) -> None:
    """Create the bounty and ledger tables if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
