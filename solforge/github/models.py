"""Typed models for GitHub REST responses."""

from __future__ import annotations

import dataclasses as dc

import msgspec


class _User(msgspec.Struct, kw_only=True):
    login: str


class _Repo(msgspec.Struct, kw_only=True):
    full_name: str


class _Base(msgspec.Struct, kw_only=True):
    repo: _Repo | None = None


class PullRequestResponse(msgspec.Struct, kw_only=True):
    """Subset of ``GET /repos/{owner}/{repo}/pulls/{number}``."""

    number: int
    html_url: str
    state: str
    merged: bool = False
    merge_commit_sha: str | None = None
    title: str = ""
    body: str | None = None
    user: _User | None = None
    base: _Base | None = None


@dc.dataclass(frozen=True, slots=True)
class PullRequestDetails:
    """Authoritative pull request facts used to confirm a merge."""

    repository_full_name: str
    number: int
    url: str
    author_login: str | None
    merged: bool
    merge_commit_sha: str | None
    title: str = ""
    body: str = ""

    @classmethod
    def from_response(
        cls, response: PullRequestResponse, *, repository_full_name: str
    ) -> PullRequestDetails:
        """Build details from a decoded REST response."""
        base_repo = response.base.repo if response.base is not None else None
        return cls(
            repository_full_name=(
                base_repo.full_name if base_repo is not None else repository_full_name
            ),
            number=response.number,
            url=response.html_url,
            author_login=response.user.login if response.user is not None else None,
            merged=response.merged,
            merge_commit_sha=response.merge_commit_sha,
            title=response.title,
            body=response.body or "",
        )
