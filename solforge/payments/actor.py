"""Dramatiq actors for background payouts.

Usage
-----
Queue a payout for one claimed bounty:

>>> execute_payout_job.send(
...     database_url="postgresql+asyncpg://...",
...     bounty_id="550e8400-e29b-41d4-a716-446655440000",
... )

Sweep payouts abandoned by a crashed worker:

>>> reconcile_payouts_job.send(database_url="postgresql+asyncpg://...")

Importing this module installs the broker named by ``SOLFORGE_BROKER_URL``
and raises ``RuntimeError`` outside tests when none is configured.

"""

from __future__ import annotations

import asyncio
import threading
import typing as typ

import dramatiq
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from solforge.chain.config import SolanaConfig

from ._broker import ensure_broker_configured
from .config import PaymentConfig
from .factory import create_ledger_client, create_payment_executor

if typ.TYPE_CHECKING:
    from .executor import PaymentExecutor

type SessionFactory = async_sessionmaker[AsyncSession]

_ENGINE_CACHE: dict[str, AsyncEngine] = {}
_SESSION_FACTORY_CACHE: dict[str, SessionFactory] = {}
_CACHE_LOCK = threading.Lock()

# Actors bind to the global broker when declared below.
ensure_broker_configured()


def _get_or_create_session_factory(database_url: str) -> SessionFactory:
    """Return the cached session factory for *database_url*.

    Thread-safe: Dramatiq runs actors on several worker threads.
    """
    with _CACHE_LOCK:
        if database_url not in _SESSION_FACTORY_CACHE:
            engine = _ENGINE_CACHE.get(database_url)
            if engine is None:
                engine = create_async_engine(database_url)
                _ENGINE_CACHE[database_url] = engine
            _SESSION_FACTORY_CACHE[database_url] = async_sessionmaker(
                engine, expire_on_commit=False
            )
        return _SESSION_FACTORY_CACHE[database_url]


def _run_with_executor[T](
    database_url: str,
    async_fn: typ.Callable[[PaymentExecutor], typ.Awaitable[T]],
) -> T:
    """Build an executor for one actor run and close its RPC client after."""
    ensure_broker_configured()
    session_factory = _get_or_create_session_factory(database_url)
    solana_config = SolanaConfig.from_env()
    payment_config = PaymentConfig.from_env()

    async def run() -> T:
        # The RPC client holds an httpx pool bound to this event loop.
        ledger_client = create_ledger_client(solana_config)
        try:
            executor = create_payment_executor(
                session_factory,
                ledger_client,
                solana_config=solana_config,
                payment_config=payment_config,
            )
            return await async_fn(executor)
        finally:
            await ledger_client.aclose()

    return asyncio.run(run())


@dramatiq.actor(max_retries=0)
def execute_payout_job(database_url: str, bounty_id: str) -> str:
    """Pay the claimant of one ``claimed`` bounty.

    Parameters
    ----------
    database_url
        SQLAlchemy URL for the database.
    bounty_id
        ID of the bounty to pay.

    Returns
    -------
    str
        The :class:`~solforge.payments.executor.PayoutResult` value.

    """

    async def execute(executor: PaymentExecutor) -> str:
        outcome = await executor.execute(bounty_id)
        return outcome.result.value

    return _run_with_executor(database_url, execute)


@dramatiq.actor(max_retries=0)
def reconcile_payouts_job(database_url: str) -> list[str]:
    """Resume every payout left unfinished by a crashed worker.

    Returns
    -------
    list[str]
        IDs of bounties whose payout completed during this sweep.

    """

    async def execute(executor: PaymentExecutor) -> list[str]:
        outcomes = await executor.reconcile_stalled()
        return [
            outcome.bounty_id
            for outcome in outcomes
            if outcome.signature is not None
        ]

    return _run_with_executor(database_url, execute)
