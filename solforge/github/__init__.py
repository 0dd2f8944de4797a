"""GitHub REST client primitives."""

from __future__ import annotations

from .client import GitHubPullRequestClient, GitHubRestClient, GitHubRestConfig
from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from .models import PullRequestDetails

__all__ = [
    "GitHubAPIError",
    "GitHubConfigError",
    "GitHubPullRequestClient",
    "GitHubResponseShapeError",
    "GitHubRestClient",
    "GitHubRestConfig",
    "PullRequestDetails",
]
