"""Construct a fully wired :class:`PaymentExecutor` from configuration."""

from __future__ import annotations

import typing as typ

from solforge.bounties.state_machine import ClaimStateMachine
from solforge.bounties.store import SqlBountyStore
from solforge.chain.client import SolanaLedgerClient
from solforge.chain.errors import ChainConfigError
from solforge.chain.keys import load_keypair
from solforge.ledger.store import SqlReconciliationLedger

from .executor import PaymentExecutor

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from solforge.chain.client import LedgerClient
    from solforge.chain.config import SolanaConfig

    from .config import PaymentConfig


def create_ledger_client(solana_config: SolanaConfig) -> SolanaLedgerClient:
    """Return a Solana client signing with the configured payout key.

    Raises
    ------
    ChainConfigError
        If ``SOLFORGE_PAYOUT_KEY`` is unset or cannot be decoded.

    """
    if solana_config.payout_key is None:
        raise ChainConfigError.missing_payout_key()
    return SolanaLedgerClient(solana_config, load_keypair(solana_config.payout_key))


def create_payment_executor(
    session_factory: async_sessionmaker[AsyncSession],
    ledger_client: LedgerClient,
    *,
    solana_config: SolanaConfig,
    payment_config: PaymentConfig,
) -> PaymentExecutor:
    """Wire an executor over SQL storage and *ledger_client*."""
    store = SqlBountyStore(session_factory)
    return PaymentExecutor(
        store,
        SqlReconciliationLedger(session_factory),
        ledger_client,
        ClaimStateMachine(store),
        config=payment_config,
        max_fee_lamports=solana_config.max_fee_lamports,
    )
