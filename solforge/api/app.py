"""Application factory for the SolForge Falcon ASGI application.

Usage
-----
Create a health-only app (no database)::

    app = create_app()

Create a full app with the webhook and bounty endpoints::

    from solforge.api.app import AppDependencies, create_app

    deps = AppDependencies(reconciler=reconciler, bounty_service=service)
    app = create_app(deps)

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from solforge.api.errors import register_error_handlers
from solforge.api.health.resources import HealthResource, ReadyResource

if typ.TYPE_CHECKING:
    from solforge.bounties.service import BountyService
    from solforge.reconciliation.service import WebhookReconciler

__all__ = ["AppDependencies", "create_app"]


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Collaborators behind the domain endpoints.

    Attributes
    ----------
    reconciler
        Webhook pipeline; mounts ``POST /webhooks/github`` when set.
    bounty_service
        Bounty lifecycle service; mounts the ``/bounties`` routes when set.

    """

    reconciler: WebhookReconciler | None = None
    bounty_service: BountyService | None = None


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    ``/health`` and ``/ready`` are always registered. Domain routes are
    added for whichever dependencies are provided.

    Parameters
    ----------
    dependencies
        Optional application dependencies.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    deps = dependencies or AppDependencies()
    app = falcon.asgi.App()

    app.add_route("/health", HealthResource())
    app.add_route(
        "/ready",
        ReadyResource(
            webhooks=deps.reconciler is not None,
            bounties=deps.bounty_service is not None,
        ),
    )

    if deps.reconciler is not None:
        from solforge.api.webhooks.resources import GitHubWebhookResource

        app.add_route("/webhooks/github", GitHubWebhookResource(deps.reconciler))

    if deps.bounty_service is not None:
        from solforge.api.bounties.resources import (
            BountyCollectionResource,
            BountyResource,
            CancelResource,
            SubmissionResource,
        )

        service = deps.bounty_service
        app.add_route("/bounties", BountyCollectionResource(service))
        app.add_route("/bounties/{bounty_id}", BountyResource(service))
        app.add_route(
            "/bounties/{bounty_id}/submissions", SubmissionResource(service)
        )
        app.add_route("/bounties/{bounty_id}/cancel", CancelResource(service))

    register_error_handlers(app)
    return app
