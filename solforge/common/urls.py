"""Parsing helpers for GitHub repository, issue and pull request URLs."""

from __future__ import annotations

import dataclasses as dc
import re
import typing as typ

from solforge.errors import ErrorKind, SolForgeError

_GITHUB_HOSTS = frozenset({"github.com", "www.github.com"})
_REF_PATTERN = re.compile(
    r"^https?://(?P<host>[^/]+)/(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+)"
    r"(?:/(?P<kind>pull|issues)/(?P<number>\d+))?/?$"
)

type RefKind = typ.Literal["pull", "issues"]


class InvalidGitHubUrlError(SolForgeError, ValueError):
    """Raised when a URL does not point at the expected GitHub resource."""

    kind = ErrorKind.INVALID_INPUT

    @classmethod
    def for_url(cls, url: str, expected: str) -> InvalidGitHubUrlError:
        """Return an error naming the URL and the expected resource type."""
        return cls(f"not a GitHub {expected} URL: {url!r}")


@dc.dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Case-normalised ``owner/repo`` pair."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        """Return the ``owner/name`` slug used as a lookup key."""
        return f"{self.owner}/{self.name}"


@dc.dataclass(frozen=True, slots=True)
class GitHubRef:
    """Reference to a numbered issue or pull request."""

    repository: RepositoryRef
    kind: RefKind
    number: int


def _match(url: str) -> re.Match[str] | None:
    match = _REF_PATTERN.match(url.strip())
    if match is None or match.group("host").lower() not in _GITHUB_HOSTS:
        return None
    return match


def _repository(match: re.Match[str]) -> RepositoryRef:
    repo = match.group("repo")
    repo = repo.removesuffix(".git")
    return RepositoryRef(owner=match.group("owner").lower(), name=repo.lower())


def normalise_full_name(full_name: str) -> str:
    """Lower-case an ``owner/repo`` slug for comparisons."""
    return full_name.strip().lower()


def parse_repository_url(url: str) -> RepositoryRef:
    """Parse ``https://github.com/<owner>/<repo>``."""
    match = _match(url)
    if match is None or match.group("kind") is not None:
        raise InvalidGitHubUrlError.for_url(url, "repository")
    return _repository(match)


def _parse_numbered(url: str, kind: RefKind, label: str) -> GitHubRef:
    match = _match(url)
    if match is None or match.group("kind") != kind:
        raise InvalidGitHubUrlError.for_url(url, label)
    return GitHubRef(
        repository=_repository(match),
        kind=kind,
        number=int(match.group("number")),
    )


def parse_pull_request_url(url: str) -> GitHubRef:
    """Parse ``https://github.com/<owner>/<repo>/pull/<n>``."""
    return _parse_numbered(url, "pull", "pull request")


def parse_issue_url(url: str) -> GitHubRef:
    """Parse ``https://github.com/<owner>/<repo>/issues/<n>``."""
    return _parse_numbered(url, "issues", "issue")
