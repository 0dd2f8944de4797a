"""``POST /webhooks/github``.

The resource reads the request body as raw bytes and hands them to the
reconciler untouched. Falcon's media parsing is never used here: GitHub
signs the exact bytes it sent, and any decode/re-encode round trip would
change them.
"""

from __future__ import annotations

import typing as typ

import falcon

from solforge.webhooks.envelope import WebhookEnvelope

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from solforge.reconciliation.service import ProcessingOutcome, WebhookReconciler

__all__ = ["GitHubWebhookResource"]


def _serialize_outcome(outcome: ProcessingOutcome) -> dict[str, typ.Any]:
    media: dict[str, typ.Any] = {
        "status": outcome.status.value,
        "delivery_id": outcome.delivery_id,
        "event": outcome.event,
        "detail": outcome.detail,
    }
    if outcome.bounty_id is not None:
        media["bounty_id"] = outcome.bounty_id
    if outcome.payment is not None:
        media["payment"] = outcome.payment.result.value
    return media


class GitHubWebhookResource:
    """Receive GitHub deliveries and run them through the reconciler."""

    def __init__(self, reconciler: WebhookReconciler) -> None:
        """Bind the resource to a reconciler."""
        self._reconciler = reconciler

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle a delivery.

        Responds 200 for accepted, ignored and duplicate deliveries.
        Signature and payload errors propagate to the registered error
        handlers (401 and 400).
        """
        body = await req.stream.read()
        envelope = WebhookEnvelope.from_request(req.headers, body)
        outcome = await self._reconciler.process(envelope)
        resp.media = _serialize_outcome(outcome)
        resp.status = falcon.HTTP_200
