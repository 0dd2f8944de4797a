"""Liveness and readiness probes.

Neither probe touches the database, so both are registered even when the
service starts without ``SOLFORGE_DATABASE_URL``.
"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = ["HealthResource", "ReadyResource"]


class HealthResource:
    """Liveness probe returning ``{"status": "ok"}``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health requests."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness probe reporting which routes are mounted."""

    def __init__(self, *, webhooks: bool = False, bounties: bool = False) -> None:
        """Record which domain routes the app serves."""
        self._webhooks = webhooks
        self._bounties = bounties

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready requests."""
        resp.media = {
            "status": "ready",
            "webhooks": self._webhooks,
            "bounties": self._bounties,
        }
        resp.status = HTTPStatus.OK
