"""Persistence models for bounties."""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ
import uuid

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from solforge.common.time import utcnow

from .errors import NaiveDatetimeError
from .models import BountyState, Currency, PaymentStatus

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class Base(DeclarativeBase):
    """Base declarative class for SolForge models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise NaiveDatetimeError
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


def _str_enum(enum_cls: type[enum.StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
        length=16,
    )


class BountyRecord(Base):
    """Stored bounty with its denormalised payment sub-record."""

    __tablename__ = "bounties"
    __table_args__ = (
        Index("ix_bounties_repo_pr", "repository_full_name", "pr_number"),
        Index("ix_bounties_repo_issue", "repository_full_name", "issue_number"),
        Index("ix_bounties_payment_status", "payment_status"),
        CheckConstraint("amount > 0", name="ck_bounties_amount_positive"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[Currency] = mapped_column(_str_enum(Currency), nullable=False)
    token_mint: Mapped[str | None] = mapped_column(String(64), default=None)
    token_decimals: Mapped[int] = mapped_column(Integer, nullable=False)
    repository_full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    repository_url: Mapped[str] = mapped_column(String(512), nullable=False)
    issue_url: Mapped[str] = mapped_column(String(512), nullable=False)
    issue_number: Mapped[int] = mapped_column(Integer, nullable=False)
    pr_url: Mapped[str | None] = mapped_column(String(512), default=None)
    pr_number: Mapped[int | None] = mapped_column(Integer, default=None)
    creator_id: Mapped[str] = mapped_column(String(128), nullable=False)
    creator_wallet: Mapped[str] = mapped_column(String(64), nullable=False)
    claimant_login: Mapped[str | None] = mapped_column(String(255), default=None)
    claimant_wallet: Mapped[str | None] = mapped_column(String(64), default=None)
    state: Mapped[BountyState] = mapped_column(
        _str_enum(BountyState), nullable=False, default=BountyState.OPEN
    )
    deadline: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _str_enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    payment_signature: Mapped[str | None] = mapped_column(String(128), default=None)
    payment_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_last_error: Mapped[str | None] = mapped_column(Text(), default=None)
    payment_started_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    payment_completed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    payment_failed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


async def init_bounty_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
