"""GitHub REST client errors."""

from __future__ import annotations

from solforge.errors import ErrorKind, SolForgeError

_HTTP_SERVER_ERROR_THRESHOLD = 500


class GitHubAPIError(SolForgeError, RuntimeError):
    """Raised when GitHub returns an error response."""

    kind = ErrorKind.UPSTREAM

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """Return True for 5xx responses and transport failures."""
        return self.status_code is None or self.status_code >= _HTTP_SERVER_ERROR_THRESHOLD

    @classmethod
    def http_error(cls, status_code: int, path: str) -> GitHubAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(f"GitHub REST HTTP {status_code} for {path}", status_code=status_code)

    @classmethod
    def transport(cls, detail: str) -> GitHubAPIError:
        """Return an error for timeouts and connection failures."""
        return cls(f"GitHub REST request failed: {detail}")


class GitHubResponseShapeError(SolForgeError, RuntimeError):
    """Raised when GitHub responses are missing expected fields."""

    kind = ErrorKind.UPSTREAM

    @classmethod
    def invalid(cls, detail: str) -> GitHubResponseShapeError:
        """Return an error describing the unexpected response shape."""
        return cls(f"GitHub REST response has unexpected shape: {detail}")


class GitHubConfigError(SolForgeError, RuntimeError):
    """Raised when GitHub client configuration is invalid."""

    kind = ErrorKind.CONFIGURATION

    @classmethod
    def empty_token(cls) -> GitHubConfigError:
        """Return an error when the provided token is empty."""
        return cls("GitHub token must be non-empty")
