"""GitHub REST client used to confirm pull request merges."""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

import httpx
import msgspec

from solforge.common.env import parse_positive_float, read_str

from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from .models import PullRequestDetails, PullRequestResponse

_HTTP_ERROR_STATUS_THRESHOLD = 400


class GitHubPullRequestClient(typ.Protocol):
    """Interface for fetching authoritative pull request details."""

    async def get_pull_request(
        self, owner: str, repo: str, number: int
    ) -> PullRequestDetails:
        """Return the current state of a pull request."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubRestConfig:
    """Configuration for the GitHub REST API client.

    ``token`` may be a personal access token or a GitHub App installation
    token. When it is ``None`` requests are sent unauthenticated, which is
    enough for public repositories at a lower rate limit.
    """

    token: str | None = dataclasses.field(default=None, repr=False)
    api_url: str = "https://api.github.com"
    timeout_s: float = 10.0
    user_agent: str = "solforge/0.1"
    app_id: str | None = None
    installation_id: str | None = None

    @classmethod
    def from_env(cls) -> GitHubRestConfig:
        """Build configuration from ``SOLFORGE_GITHUB_*`` env vars."""
        app_id = read_str("SOLFORGE_GITHUB_APP_ID")
        user_agent = f"solforge-app/{app_id}" if app_id else "solforge/0.1"
        return cls(
            token=read_str("SOLFORGE_GITHUB_TOKEN"),
            api_url=read_str("SOLFORGE_GITHUB_API_URL", "https://api.github.com")
            or "https://api.github.com",
            timeout_s=parse_positive_float("SOLFORGE_GITHUB_TIMEOUT_S", 10.0),
            user_agent=user_agent,
            app_id=app_id,
            installation_id=read_str("SOLFORGE_GITHUB_INSTALLATION_ID"),
        )


class GitHubRestClient:
    """httpx implementation of :class:`GitHubPullRequestClient`."""

    def __init__(
        self,
        config: GitHubRestConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        if config.token is not None and not config.token.strip():
            raise GitHubConfigError.empty_token()

        self._config = config
        headers = {
            "User-Agent": config.user_agent,
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if config.token is not None:
            headers["Authorization"] = f"Bearer {config.token}"
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout_s,
            headers=headers,
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def get_pull_request(
        self, owner: str, repo: str, number: int
    ) -> PullRequestDetails:
        """Fetch ``GET /repos/{owner}/{repo}/pulls/{number}``.

        Raises
        ------
        GitHubAPIError
            On non-2xx responses, timeouts and transport failures.
        GitHubResponseShapeError
            When the response body lacks required fields.

        """
        path = f"/repos/{owner}/{repo}/pulls/{number}"
        url = self._config.api_url.rstrip("/") + path
        try:
            async with asyncio.timeout(self._config.timeout_s):
                response = await self._client.get(url)
        except (TimeoutError, httpx.TransportError) as exc:
            raise GitHubAPIError.transport(str(exc) or type(exc).__name__) from exc

        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(response.status_code, path)

        try:
            decoded = msgspec.json.decode(response.content, type=PullRequestResponse)
        except msgspec.MsgspecError as exc:
            raise GitHubResponseShapeError.invalid(str(exc)) from exc
        return PullRequestDetails.from_response(
            decoded, repository_full_name=f"{owner}/{repo}"
        )
