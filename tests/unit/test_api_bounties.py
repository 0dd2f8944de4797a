"""HTTP tests for the bounty and webhook endpoints."""

from __future__ import annotations

import typing as typ

import falcon
import falcon.testing
import pytest

from solforge.api.app import AppDependencies, create_app
from tests.helpers.bounties import new_wallet
from tests.helpers.database import prepare_session_factory, sqlite_url
from tests.helpers.github_payloads import encode, pull_request_payload, signed_headers
from tests.helpers.ledger_fakes import FakeLedgerClient
from tests.helpers.pipeline import build_reconciler

if typ.TYPE_CHECKING:
    from pathlib import Path


class ApiHarness(typ.NamedTuple):
    """Test client plus the fake chain behind it."""

    client: falcon.testing.TestClient
    ledger: FakeLedgerClient


@pytest.fixture
def api(tmp_path: Path) -> ApiHarness:
    """Serve the full app over SQLite with an inline fake payout."""
    session_factory = prepare_session_factory(sqlite_url(tmp_path))
    ledger = FakeLedgerClient()
    reconciler, service = build_reconciler(session_factory, ledger)
    app = create_app(AppDependencies(reconciler=reconciler, bounty_service=service))
    return ApiHarness(falcon.testing.TestClient(app), ledger)


def _create_body(**overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "title": "Fix flaky reconnect",
        "display_amount": "0.1",
        "currency": "SOL",
        "issue_url": "https://github.com/o/r/issues/7",
        "repository_url": "https://github.com/o/r",
        "creator_id": "creator-1",
        "creator_wallet": new_wallet(),
    }
    body.update(overrides)
    return body


def _create(api: ApiHarness, **overrides: object) -> dict[str, typ.Any]:
    result = api.client.simulate_post("/bounties", json=_create_body(**overrides))
    assert result.status == falcon.HTTP_201, f"create failed: {result.text}"
    return result.json


def test_create_bounty_returns_funding_instruction(api: ApiHarness) -> None:
    """POST /bounties stores the bounty and returns the escrow instruction."""
    created = _create(api)

    bounty = created["bounty"]
    assert bounty["state"] == "open"
    assert bounty["reward"]["amount"] == "100000000"
    assert bounty["reward"]["display_amount"] == "0.1"
    assert bounty["payment"]["status"] == "pending"
    assert created["funding_instruction"]["bounty_address"]
    assert created["funding_instruction"]["data"]


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"display_amount": "0"}, "display_amount"),
        ({"creator_wallet": "nope"}, "creator_wallet"),
        ({"issue_url": "https://gitlab.com/o/r/issues/7"}, "issue_url"),
    ],
)
def test_create_bounty_validation(
    api: ApiHarness, overrides: dict[str, object], field: str
) -> None:
    """Invalid fields produce a 400 naming the field."""
    result = api.client.simulate_post("/bounties", json=_create_body(**overrides))
    assert result.status == falcon.HTTP_400
    assert result.json["field"] == field


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"{not json",
        b'{"title": "x", "display_amount": 0.1}',
        b'{"title": "x", "unexpected": true}',
    ],
)
def test_create_bounty_rejects_bad_bodies(api: ApiHarness, body: bytes) -> None:
    """Empty, invalid, float-amount and unknown-field bodies are 400s."""
    result = api.client.simulate_post(
        "/bounties", body=body, headers={"Content-Type": "application/json"}
    )
    assert result.status == falcon.HTTP_400, f"unexpected {result.status}"


def test_create_bounty_amount_input_is_named_display_amount(api: ApiHarness) -> None:
    """The input names the decimal amount so it is not read as base units."""
    body = _create_body()
    body["amount"] = body.pop("display_amount")

    result = api.client.simulate_post("/bounties", json=body)

    assert result.status == falcon.HTTP_400, "a bare amount is ambiguous"
    created = _create(api, display_amount="2.5")
    assert created["bounty"]["reward"]["amount"] == "2500000000"
    assert created["bounty"]["reward"]["display_amount"] == "2.5"


def test_get_unknown_bounty_is_404(api: ApiHarness) -> None:
    """Unknown bounty IDs are 404s."""
    result = api.client.simulate_get("/bounties/missing")
    assert result.status == falcon.HTTP_404


def test_submit_then_cancel_conflict(api: ApiHarness) -> None:
    """Submission succeeds once; a second one is a 409."""
    bounty_id = _create(api)["bounty"]["id"]
    submission = {
        "pr_url": "https://github.com/o/r/pull/42",
        "claimant_login": "claimant",
        "claimant_wallet": new_wallet(),
    }

    first = api.client.simulate_post(
        f"/bounties/{bounty_id}/submissions", json=submission
    )
    second = api.client.simulate_post(
        f"/bounties/{bounty_id}/submissions", json=submission
    )

    assert first.status == falcon.HTTP_200
    assert first.json["state"] == "submitted"
    assert second.status == falcon.HTTP_409
    assert second.json["state"] == "submitted"


def test_cancel_open_bounty(api: ApiHarness) -> None:
    """POST /cancel cancels an open bounty."""
    bounty_id = _create(api)["bounty"]["id"]
    result = api.client.simulate_post(f"/bounties/{bounty_id}/cancel")
    assert result.status == falcon.HTTP_200
    assert result.json["state"] == "cancelled"


def test_webhook_merge_pays_claimant(api: ApiHarness) -> None:
    """A signed merge delivery completes the bounty end to end."""
    bounty_id = _create(api)["bounty"]["id"]
    api.client.simulate_post(
        f"/bounties/{bounty_id}/submissions",
        json={
            "pr_url": "https://github.com/o/r/pull/42",
            "claimant_login": "claimant",
            "claimant_wallet": new_wallet(),
        },
    )
    body = encode(pull_request_payload())

    result = api.client.simulate_post(
        "/webhooks/github", body=body, headers=signed_headers(body)
    )

    assert result.status == falcon.HTTP_200, result.text
    assert result.json["status"] == "accepted"
    assert result.json["payment"] == "completed"
    bounty = api.client.simulate_get(f"/bounties/{bounty_id}").json
    assert bounty["state"] == "completed"
    assert bounty["payment"]["signature"] == "fake-signature-1"


def test_webhook_with_bad_signature_is_401(api: ApiHarness) -> None:
    """Unsigned and mis-signed deliveries are rejected without detail."""
    body = encode(pull_request_payload())
    headers = signed_headers(body)
    unsigned = {k: v for k, v in headers.items() if not k.startswith("X-Hub")}

    tampered = api.client.simulate_post(
        "/webhooks/github", body=body + b" ", headers=headers
    )
    missing = api.client.simulate_post("/webhooks/github", body=body, headers=unsigned)

    for result in (tampered, missing):
        assert result.status == falcon.HTTP_401
        assert result.json["description"] == "Webhook signature verification failed."
