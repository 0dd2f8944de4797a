"""Request validation errors and Falcon error handlers for the API layer.

Usage
-----
Register the handlers on the Falcon app::

    from solforge.api.errors import register_error_handlers

    register_error_handlers(app)

"""

from __future__ import annotations

import typing as typ

import falcon

from solforge.bounties.errors import (
    BountyNotFoundError,
    BountyValidationError,
    IllegalTransitionError,
)
from solforge.errors import ErrorKind, SolForgeError
from solforge.webhooks.errors import MalformedPayloadError, WebhookAuthenticationError

if typ.TYPE_CHECKING:
    from falcon.asgi import App, Request, Response

__all__ = [
    "InvalidInputError",
    "handle_authentication_failed",
    "handle_bounty_not_found",
    "handle_illegal_transition",
    "handle_invalid_input",
    "handle_malformed_payload",
    "register_error_handlers",
]


class InvalidInputError(SolForgeError, ValueError):
    """Raised when a request body does not match the expected shape.

    Only intentional validation failures map to HTTP 400; programmer
    mistakes still surface as 500s.
    """

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialise with a validation reason and optional field name."""
        self.reason = reason
        self.field = field
        super().__init__(f"{field}: {reason}" if field is not None else reason)


async def handle_bounty_not_found(
    _req: Request,
    resp: Response,
    ex: BountyNotFoundError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``BountyNotFoundError`` to an HTTP 404 JSON response."""
    resp.status = falcon.HTTP_404
    resp.media = {"title": "Bounty not found", "description": str(ex)}


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError | BountyValidationError,
    _params: dict[str, typ.Any],
) -> None:
    """Map validation failures to an HTTP 400 JSON response.

    Parameters
    ----------
    _req
        Falcon request (unused).
    resp
        Falcon response whose status and media are set.
    ex
        The validation exception containing reason and optional field.
    _params
        URI template parameters (unused).

    """
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {"title": "Invalid input", "description": ex.reason}
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media


async def handle_illegal_transition(
    _req: Request,
    resp: Response,
    ex: IllegalTransitionError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``IllegalTransitionError`` to an HTTP 409 JSON response."""
    resp.status = falcon.HTTP_409
    media: dict[str, str] = {"title": "Illegal transition", "description": str(ex)}
    if ex.state is not None:
        media["state"] = ex.state.value
    resp.media = media


async def handle_authentication_failed(
    _req: Request,
    resp: Response,
    _ex: WebhookAuthenticationError,
    _params: dict[str, typ.Any],
) -> None:
    """Map signature failures to HTTP 401 without revealing the cause."""
    resp.status = falcon.HTTP_401
    resp.media = {
        "title": "Unauthorized",
        "description": "Webhook signature verification failed.",
    }


async def handle_malformed_payload(
    _req: Request,
    resp: Response,
    ex: MalformedPayloadError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``MalformedPayloadError`` to an HTTP 400 JSON response."""
    resp.status = falcon.HTTP_400
    resp.media = {"title": "Malformed payload", "description": str(ex)}


def register_error_handlers(app: App) -> None:
    """Attach every SolForge error handler to *app*."""
    app.add_error_handler(BountyNotFoundError, handle_bounty_not_found)
    app.add_error_handler(InvalidInputError, handle_invalid_input)
    app.add_error_handler(BountyValidationError, handle_invalid_input)
    app.add_error_handler(IllegalTransitionError, handle_illegal_transition)
    app.add_error_handler(WebhookAuthenticationError, handle_authentication_failed)
    app.add_error_handler(MalformedPayloadError, handle_malformed_payload)
