"""Match merged pull requests to bounties and their claimants."""

from __future__ import annotations

import dataclasses as dc
import enum
import re
import typing as typ

from solforge.common.urls import (
    InvalidGitHubUrlError,
    normalise_full_name,
    parse_pull_request_url,
)
from solforge.logging import get_logger, log_info, log_warning

from .models import Bounty, BountyState

if typ.TYPE_CHECKING:
    from solforge.github.client import GitHubPullRequestClient
    from solforge.webhooks.events import PullRequestMerged

    from .store import BountyStore

logger = get_logger(__name__)

_CLOSING_KEYWORDS = re.compile(
    r"\b(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)\s*:?\s+#(\d+)\b",
    re.IGNORECASE,
)
_SETTLED_STATES = frozenset({BountyState.CLAIMED, BountyState.COMPLETED})


class CorrelationResult(enum.StrEnum):
    """Outcome of correlating a merge with the bounty store."""

    MATCHED = "matched"
    UNMATCHED = "unmatched"
    AUTHOR_MISMATCH = "author_mismatch"
    REPLAYED = "replayed"
    NOT_MERGED = "not_merged"
    ISSUE_NOT_REFERENCED = "issue_not_referenced"


@dc.dataclass(frozen=True, slots=True)
class Correlation:
    """Result of :meth:`BountyCorrelator.correlate`."""

    result: CorrelationResult
    bounty: Bounty | None = None
    author_login: str | None = None
    detail: str = ""


@dc.dataclass(frozen=True, slots=True)
class _MergeFacts:
    repository_full_name: str
    pr_number: int
    author_login: str | None
    merged: bool | None
    title: str
    body: str


def closing_issue_numbers(body: str) -> list[int]:
    """Return issue numbers referenced by ``fixes #N``-style keywords."""
    seen: dict[int, None] = {}
    for match in _CLOSING_KEYWORDS.finditer(body or ""):
        seen.setdefault(int(match.group(1)), None)
    return list(seen)


def references_issue(text: str, issue_number: int, issue_url: str = "") -> bool:
    """Return True when *text* mentions ``#<issue_number>`` or the issue URL."""
    patterns = [rf"#{issue_number}(?!\d)"]
    if issue_url:
        patterns.append(re.escape(issue_url.rstrip("/")) + r"(?!\d)")
    return any(re.search(pattern, text) for pattern in patterns)


def _same_login(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return left.casefold() == right.casefold()


class BountyCorrelator:
    """Resolve a :class:`PullRequestMerged` event to at most one bounty.

    Lookup order is the stored PR reference first, then issues the PR body
    closes in the same repository. Either way the PR title or body must
    mention the bounty's issue. The GitHub client, when provided, fills in
    the author, merge flag and body when the payload lacks them.
    """

    def __init__(
        self,
        store: BountyStore,
        github_client: GitHubPullRequestClient | None = None,
    ) -> None:
        """Bind the correlator to storage and an optional GitHub client."""
        self._store = store
        self._github = github_client

    async def _merge_facts(self, event: PullRequestMerged) -> _MergeFacts:
        try:
            pr = parse_pull_request_url(event.pr_url)
        except InvalidGitHubUrlError:
            full_name = normalise_full_name(event.repository_full_name)
            owner, _, repo = full_name.partition("/")
            number = event.pr_number
        else:
            owner, repo, number = pr.repository.owner, pr.repository.name, pr.number
        facts = _MergeFacts(
            repository_full_name=f"{owner}/{repo}",
            pr_number=number,
            author_login=event.author_login,
            merged=event.merged,
            title=event.title,
            body=event.body,
        )
        if self._github is None or (
            facts.author_login is not None
            and facts.merged is not None
            and facts.body
        ):
            return facts

        details = await self._github.get_pull_request(owner, repo, number)
        return dc.replace(
            facts,
            author_login=facts.author_login or details.author_login,
            merged=details.merged,
            title=facts.title or details.title,
            body=facts.body or details.body,
        )

    async def _candidates(self, facts: _MergeFacts) -> list[Bounty]:
        by_pr = await self._store.find_by_pull_request(
            facts.repository_full_name, facts.pr_number
        )
        if by_pr:
            return by_pr
        candidates: list[Bounty] = []
        for issue_number in closing_issue_numbers(facts.body):
            candidates.extend(
                bounty
                for bounty in await self._store.find_by_issue(
                    facts.repository_full_name, issue_number
                )
                if bounty.pr_number in {None, facts.pr_number}
            )
        return candidates

    async def correlate(self, event: PullRequestMerged) -> Correlation:
        """Correlate a merge event with a submitted bounty.

        Returns
        -------
        Correlation
            ``MATCHED`` carries the bounty ready for ``MERGE_CONFIRMED``.
            Every other result is a no-op for the caller.

        """
        facts = await self._merge_facts(event)
        if facts.merged is not True:
            log_info(
                logger,
                "Ignoring PR %s#%d: merge not confirmed",
                facts.repository_full_name,
                facts.pr_number,
            )
            return Correlation(
                CorrelationResult.NOT_MERGED, detail="merge not confirmed"
            )

        candidates = await self._candidates(facts)
        submitted = [b for b in candidates if b.state is BountyState.SUBMITTED]
        if not submitted:
            settled = [b for b in candidates if b.state in _SETTLED_STATES]
            if settled:
                return Correlation(
                    CorrelationResult.REPLAYED,
                    bounty=settled[0],
                    author_login=facts.author_login,
                    detail="merge already applied",
                )
            return Correlation(
                CorrelationResult.UNMATCHED,
                author_login=facts.author_login,
                detail="no submitted bounty references this pull request",
            )

        bounty = submitted[0]
        if not references_issue(
            f"{facts.title}\n{facts.body}", bounty.issue_number, bounty.issue_url
        ):
            log_warning(
                logger,
                "PR %s#%d does not reference issue #%d of bounty %s",
                facts.repository_full_name,
                facts.pr_number,
                bounty.issue_number,
                bounty.id,
            )
            return Correlation(
                CorrelationResult.ISSUE_NOT_REFERENCED,
                bounty=bounty,
                author_login=facts.author_login,
                detail=f"pull request does not reference issue #{bounty.issue_number}",
            )

        if not _same_login(facts.author_login, bounty.claimant_login):
            log_warning(
                logger,
                "PR author %r does not match claimant %r for bounty %s",
                facts.author_login,
                bounty.claimant_login,
                bounty.id,
            )
            return Correlation(
                CorrelationResult.AUTHOR_MISMATCH,
                bounty=bounty,
                author_login=facts.author_login,
                detail="pull request author is not the claimant",
            )

        return Correlation(
            CorrelationResult.MATCHED, bounty=bounty, author_login=facts.author_login
        )
