"""Bounty API resources.

Routes
------
``POST /bounties``
    Create a bounty; returns the bounty and the unsigned funding
    instruction for the creator's wallet.
``GET /bounties/{bounty_id}``
    Return a bounty including its payment status, signature, attempt
    count and last error.
``POST /bounties/{bounty_id}/submissions``
    Attach a pull request and claimant wallet to an ``open`` bounty.
``POST /bounties/{bounty_id}/cancel``
    Cancel an ``open`` or ``submitted`` bounty.

Request bodies are decoded with msgspec into typed structs, so a wrong type
or a missing field becomes a 400 before the service is called. The
reward is given as ``display_amount``, a decimal string or integer in whole
coins or tokens; JSON floats are rejected so no precision is lost before
conversion to base units. Responses carry both ``reward.amount`` (base
units) and ``reward.display_amount``.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

import falcon
import msgspec

from solforge.api.errors import InvalidInputError
from solforge.bounties.models import Currency
from solforge.bounties.service import CreateBountyRequest, SubmissionRequest
from solforge.common.amounts import format_base_units

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from solforge.bounties.models import Bounty
    from solforge.bounties.service import BountyService, FundingInstruction

__all__ = [
    "BountyCollectionResource",
    "BountyResource",
    "CancelResource",
    "SubmissionResource",
]


class CreateBountyBody(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """JSON body of ``POST /bounties``."""

    title: str
    description: str = ""
    display_amount: str | int
    currency: Currency = Currency.SOL
    issue_url: str
    repository_url: str
    creator_id: str
    creator_wallet: str
    token_mint: str | None = None
    token_decimals: int | None = None
    deadline: dt.datetime | None = None


class SubmissionBody(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """JSON body of ``POST /bounties/{bounty_id}/submissions``."""

    pr_url: str
    claimant_login: str
    claimant_wallet: str


async def _decode_body[T](req: Request, body_type: type[T]) -> T:
    raw = await req.stream.read()
    if not raw:
        raise InvalidInputError("request body is required")
    try:
        return msgspec.json.decode(raw, type=body_type)
    except msgspec.ValidationError as exc:
        raise InvalidInputError(str(exc)) from exc
    except msgspec.DecodeError as exc:
        raise InvalidInputError(f"body is not valid JSON: {exc}") from exc


def _isoformat(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_bounty(bounty: Bounty) -> dict[str, typ.Any]:
    """Serialize a bounty snapshot to a JSON-compatible dict.

    ``amount`` is the integer base-unit count as a string so values above
    2**53 survive JavaScript clients; ``display_amount`` is the decimal
    rendering.
    """
    reward = bounty.reward
    return {
        "id": bounty.id,
        "title": bounty.title,
        "description": bounty.description,
        "state": bounty.state.value,
        "reward": {
            "amount": str(reward.amount),
            "display_amount": format_base_units(reward.amount, reward.decimals),
            "currency": reward.currency.value,
            "decimals": reward.decimals,
            "mint": reward.mint,
        },
        "repository": bounty.repository_full_name,
        "repository_url": bounty.repository_url,
        "issue_url": bounty.issue_url,
        "pr_url": bounty.pr_url,
        "creator_id": bounty.creator_id,
        "creator_wallet": bounty.creator_wallet,
        "claimant_login": bounty.claimant_login,
        "claimant_wallet": bounty.claimant_wallet,
        "deadline": _isoformat(bounty.deadline),
        "payment": {
            "status": bounty.payment.status.value,
            "signature": bounty.payment.signature,
            "attempts": bounty.payment.attempts,
            "last_error": bounty.payment.last_error,
            "completed_at": _isoformat(bounty.payment.completed_at),
            "failed_at": _isoformat(bounty.payment.failed_at),
        },
        "created_at": bounty.created_at.isoformat(),
        "updated_at": bounty.updated_at.isoformat(),
    }


def _serialize_funding(funding: FundingInstruction) -> dict[str, typ.Any]:
    return {
        "program_id": funding.program_id,
        "bounty_address": funding.bounty_address,
        "issue_hash": funding.issue_hash,
        "accounts": list(funding.accounts),
        "data": funding.data,
    }


class BountyCollectionResource:
    """``POST /bounties``."""

    def __init__(self, service: BountyService) -> None:
        """Bind the resource to the bounty service."""
        self._service = service

    async def on_post(self, req: Request, resp: Response) -> None:
        """Create a bounty and return its funding instruction."""
        body = await _decode_body(req, CreateBountyBody)
        created = await self._service.create_bounty(
            CreateBountyRequest(
                title=body.title,
                description=body.description,
                display_amount=body.display_amount,
                currency=body.currency,
                issue_url=body.issue_url,
                repository_url=body.repository_url,
                creator_id=body.creator_id,
                creator_wallet=body.creator_wallet,
                token_mint=body.token_mint,
                token_decimals=body.token_decimals,
                deadline=body.deadline,
            )
        )
        resp.media = {
            "bounty": serialize_bounty(created.bounty),
            "funding_instruction": _serialize_funding(created.funding),
        }
        resp.status = falcon.HTTP_201


class BountyResource:
    """``GET /bounties/{bounty_id}``."""

    def __init__(self, service: BountyService) -> None:
        """Bind the resource to the bounty service."""
        self._service = service

    async def on_get(self, _req: Request, resp: Response, *, bounty_id: str) -> None:
        """Return the bounty and its payment status."""
        resp.media = serialize_bounty(await self._service.get(bounty_id))
        resp.status = falcon.HTTP_200


class SubmissionResource:
    """``POST /bounties/{bounty_id}/submissions``."""

    def __init__(self, service: BountyService) -> None:
        """Bind the resource to the bounty service."""
        self._service = service

    async def on_post(self, req: Request, resp: Response, *, bounty_id: str) -> None:
        """Record a claimant's pull request submission."""
        body = await _decode_body(req, SubmissionBody)
        bounty = await self._service.submit_claim(
            bounty_id,
            SubmissionRequest(
                pr_url=body.pr_url,
                claimant_login=body.claimant_login,
                claimant_wallet=body.claimant_wallet,
            ),
        )
        resp.media = serialize_bounty(bounty)
        resp.status = falcon.HTTP_200


class CancelResource:
    """``POST /bounties/{bounty_id}/cancel``."""

    def __init__(self, service: BountyService) -> None:
        """Bind the resource to the bounty service."""
        self._service = service

    async def on_post(self, _req: Request, resp: Response, *, bounty_id: str) -> None:
        """Cancel the bounty."""
        resp.media = serialize_bounty(await self._service.cancel(bounty_id))
        resp.status = falcon.HTTP_200
