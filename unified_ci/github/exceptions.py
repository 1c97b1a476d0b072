"""Errors raised by the GitHub client.

Error responses are mapped onto this hierarchy by :func:`error_for_status`.
The client retries only errors marked ``retryable``; everything else reaches
the check run pipeline on the first failure.
"""

from typing import Any


class GitHubError(Exception):
    """A GitHub API call failed."""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}

    @property
    def details(self) -> list[str]:
        """Field level messages GitHub attaches under ``errors``, if any."""
        details = []
        for error in self.response_data.get("errors") or []:
            if isinstance(error, dict):
                details.append(str(error.get("message") or error.get("code") or ""))
            else:
                details.append(str(error))
        return [d for d in details if d]


class GitHubAuthenticationError(GitHubError):
    """The app JWT or an installation token was rejected (401/403)."""


class GitHubNotFoundError(GitHubError):
    """Repository, pull request or check run unknown to the installation."""


class GitHubValidationError(GitHubError):
    """GitHub rejected a payload (422), e.g. an oversized check run output."""


class GitHubServerError(GitHubError):
    retryable = True


class GitHubConnectionError(GitHubError):
    """GitHub or the SOCKS5 proxy in front of it could not be reached."""

    retryable = True


class GitHubTimeoutError(GitHubError):
    retryable = True


_STATUS_ERRORS: dict[int, type[GitHubError]] = {
    401: GitHubAuthenticationError,
    403: GitHubAuthenticationError,
    404: GitHubNotFoundError,
    422: GitHubValidationError,
}


def error_for_status(status: int, data: dict[str, Any]) -> GitHubError:
    """Build the error matching an error response of GitHub."""
    message = data.get("message") or f"HTTP {status}"
    if 500 <= status < 600:
        error_class: type[GitHubError] = GitHubServerError
    else:
        error_class = _STATUS_ERRORS.get(status, GitHubError)
    return error_class(message, status, data)
