"""Typed GitHub webhook payloads and the domain events derived from them.

Wire payloads are decoded with msgspec structs that only name the fields
SolForge reads; unknown fields are ignored. Each accepted delivery becomes
one immutable domain event.
"""

from __future__ import annotations

import dataclasses as dc

import msgspec

from .errors import MalformedPayloadError

# -- wire payloads -----------------------------------------------------------


class _User(msgspec.Struct, kw_only=True):
    login: str | None = None


class _Repository(msgspec.Struct, kw_only=True):
    full_name: str


class _PullRequest(msgspec.Struct, kw_only=True):
    number: int
    html_url: str
    title: str = ""
    body: str | None = None
    merged: bool | None = None
    merge_commit_sha: str | None = None
    user: _User | None = None


class _PullRequestPayload(msgspec.Struct, kw_only=True):
    action: str
    pull_request: _PullRequest
    repository: _Repository


class _Issue(msgspec.Struct, kw_only=True):
    number: int
    html_url: str
    state_reason: str | None = None


class _IssuesPayload(msgspec.Struct, kw_only=True):
    action: str
    issue: _Issue
    repository: _Repository


class _PingPayload(msgspec.Struct, kw_only=True):
    zen: str | None = None


class _ActionPayload(msgspec.Struct, kw_only=True):
    action: str | None = None


# -- domain events -----------------------------------------------------------


@dc.dataclass(frozen=True, slots=True)
class PullRequestOpened:
    """A pull request was opened or reopened."""

    delivery_id: str
    repository_full_name: str
    pr_number: int
    pr_url: str
    author_login: str | None
    title: str = ""
    body: str = ""


@dc.dataclass(frozen=True, slots=True)
class PullRequestMerged:
    """A pull request was closed and merged.

    ``merged`` is ``None`` when the payload omitted the flag; the correlator
    then confirms the merge with the GitHub API before acting.
    """

    delivery_id: str
    repository_full_name: str
    pr_number: int
    pr_url: str
    author_login: str | None
    merge_commit_sha: str | None
    merged: bool | None = True
    title: str = ""
    body: str = ""


@dc.dataclass(frozen=True, slots=True)
class PullRequestClosed:
    """A pull request was closed without being merged."""

    delivery_id: str
    repository_full_name: str
    pr_number: int
    pr_url: str
    author_login: str | None


@dc.dataclass(frozen=True, slots=True)
class IssueClosed:
    """An issue was closed."""

    delivery_id: str
    repository_full_name: str
    issue_number: int
    issue_url: str
    state_reason: str | None = None


@dc.dataclass(frozen=True, slots=True)
class Ping:
    """GitHub's hook-configuration ping."""

    delivery_id: str
    zen: str | None = None


@dc.dataclass(frozen=True, slots=True)
class Unhandled:
    """Any delivery SolForge does not act on."""

    delivery_id: str
    event_name: str
    action: str | None = None


@dc.dataclass(frozen=True, slots=True)
class DuplicateDelivery:
    """Marker for a delivery ID that has already been processed."""

    delivery_id: str


type DomainEvent = (
    PullRequestOpened
    | PullRequestMerged
    | PullRequestClosed
    | IssueClosed
    | Ping
    | Unhandled
)

_OPEN_ACTIONS = frozenset({"opened", "reopened"})


def _decode[T](body: bytes, payload_type: type[T]) -> T:
    try:
        return msgspec.json.decode(body, type=payload_type)
    except msgspec.MsgspecError as exc:
        raise MalformedPayloadError.undecodable(str(exc)) from exc


def _author(pull_request: _PullRequest) -> str | None:
    return pull_request.user.login if pull_request.user is not None else None


def _pull_request_event(delivery_id: str, body: bytes) -> DomainEvent:
    payload = _decode(body, _PullRequestPayload)
    pr = payload.pull_request
    repo = payload.repository.full_name
    if payload.action in _OPEN_ACTIONS:
        return PullRequestOpened(
            delivery_id=delivery_id,
            repository_full_name=repo,
            pr_number=pr.number,
            pr_url=pr.html_url,
            author_login=_author(pr),
            title=pr.title,
            body=pr.body or "",
        )
    if payload.action == "closed":
        if pr.merged is False:
            return PullRequestClosed(
                delivery_id=delivery_id,
                repository_full_name=repo,
                pr_number=pr.number,
                pr_url=pr.html_url,
                author_login=_author(pr),
            )
        return PullRequestMerged(
            delivery_id=delivery_id,
            repository_full_name=repo,
            pr_number=pr.number,
            pr_url=pr.html_url,
            author_login=_author(pr),
            merge_commit_sha=pr.merge_commit_sha,
            merged=pr.merged,
            title=pr.title,
            body=pr.body or "",
        )
    return Unhandled(delivery_id, "pull_request", payload.action)


def _issues_event(delivery_id: str, body: bytes) -> DomainEvent:
    payload = _decode(body, _IssuesPayload)
    if payload.action != "closed":
        return Unhandled(delivery_id, "issues", payload.action)
    return IssueClosed(
        delivery_id=delivery_id,
        repository_full_name=payload.repository.full_name,
        issue_number=payload.issue.number,
        issue_url=payload.issue.html_url,
        state_reason=payload.issue.state_reason,
    )


def parse_event(event_name: str, delivery_id: str, body: bytes) -> DomainEvent:
    """Decode an authenticated delivery into a domain event.

    Parameters
    ----------
    event_name
        Value of the ``X-GitHub-Event`` header.
    delivery_id
        Value of the ``X-GitHub-Delivery`` header.
    body
        Raw, already-verified body bytes.

    Raises
    ------
    MalformedPayloadError
        If the body is not JSON or lacks fields required for its event type.

    """
    if event_name == "pull_request":
        return _pull_request_event(delivery_id, body)
    if event_name == "issues":
        return _issues_event(delivery_id, body)
    if event_name == "ping":
        return Ping(delivery_id, _decode(body, _PingPayload).zen)
    action = _decode(body, _ActionPayload).action
    return Unhandled(delivery_id, event_name, action)


def event_label(event: DomainEvent | DuplicateDelivery) -> str:
    """Return a short label used in logs and delivery records."""
    return type(event).__name__


__all__ = [
    "DomainEvent",
    "DuplicateDelivery",
    "IssueClosed",
    "Ping",
    "PullRequestClosed",
    "PullRequestMerged",
    "PullRequestOpened",
    "Unhandled",
    "event_label",
    "parse_event",
]
