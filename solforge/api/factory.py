"""Build the API's dependencies from environment configuration.

Usage
-----
Build dependencies for the runtime::

    from solforge.api.factory import build_dependencies

    deps = build_dependencies(session_factory, database_url=url)

"""

from __future__ import annotations

import typing as typ

from solforge.api.app import AppDependencies
from solforge.bounties.config import BountyConfig
from solforge.bounties.correlator import BountyCorrelator
from solforge.bounties.service import BountyService
from solforge.bounties.state_machine import ClaimStateMachine
from solforge.bounties.store import SqlBountyStore
from solforge.chain.config import SolanaConfig
from solforge.github.client import GitHubRestClient, GitHubRestConfig
from solforge.ledger.store import SqlReconciliationLedger
from solforge.logging import get_logger, log_warning
from solforge.payments.config import PaymentConfig, PayoutMode
from solforge.payments.dispatcher import (
    InlinePayoutDispatcher,
    QueuePayoutDispatcher,
)
from solforge.payments.factory import create_ledger_client, create_payment_executor
from solforge.reconciliation.observability import ReconciliationEventLogger
from solforge.reconciliation.service import WebhookReconciler
from solforge.webhooks.classifier import EventClassifier
from solforge.webhooks.config import WebhookConfig
from solforge.webhooks.errors import WebhookConfigError

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from solforge.payments.dispatcher import PayoutDispatcher

__all__ = ["build_dependencies", "build_dispatcher"]

logger = get_logger(__name__)


def build_dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    database_url: str,
    solana_config: SolanaConfig,
    payment_config: PaymentConfig,
) -> PayoutDispatcher | None:
    """Return the dispatcher selected by ``SOLFORGE_PAYOUT_MODE``.

    Raises
    ------
    ChainConfigError
        In inline mode, if the payout key is missing or invalid.

    """
    if not payment_config.auto_payment:
        return None
    if payment_config.payout_mode is PayoutMode.QUEUE:
        return QueuePayoutDispatcher(database_url)
    executor = create_payment_executor(
        session_factory,
        create_ledger_client(solana_config),
        solana_config=solana_config,
        payment_config=payment_config,
    )
    return InlinePayoutDispatcher(executor)


def build_dependencies(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    database_url: str,
) -> AppDependencies:
    """Assemble the bounty service and webhook reconciler.

    When ``SOLFORGE_WEBHOOK_SECRET`` is unset the webhook route is left
    unmounted and a warning is logged; the bounty routes still serve.

    Parameters
    ----------
    session_factory
        Async session factory for database access.
    database_url
        URL passed to queued payout jobs.

    Returns
    -------
    AppDependencies
        Dependencies for :func:`solforge.api.app.create_app`.

    """
    store = SqlBountyStore(session_factory)
    state_machine = ClaimStateMachine(store)
    solana_config = SolanaConfig.from_env()
    bounty_service = BountyService(
        store,
        state_machine,
        program_id=solana_config.program_id,
        config=BountyConfig.from_env(),
    )

    try:
        webhook_config = WebhookConfig.from_env()
    except WebhookConfigError as exc:
        log_warning(logger, "Webhook endpoint disabled: %s", exc)
        return AppDependencies(bounty_service=bounty_service)

    payment_config = PaymentConfig.from_env()
    ledger = SqlReconciliationLedger(session_factory)
    reconciler = WebhookReconciler(
        webhook_config,
        classifier=EventClassifier(ledger),
        correlator=BountyCorrelator(
            store, GitHubRestClient(GitHubRestConfig.from_env())
        ),
        state_machine=state_machine,
        bounty_service=bounty_service,
        ledger=ledger,
        dispatcher=build_dispatcher(
            session_factory,
            database_url=database_url,
            solana_config=solana_config,
            payment_config=payment_config,
        ),
        auto_payment=payment_config.auto_payment,
        event_logger=ReconciliationEventLogger(),
    )
    return AppDependencies(reconciler=reconciler, bounty_service=bounty_service)
