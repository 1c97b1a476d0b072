"""Async GitHub API client with authentication, retries and error mapping."""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import aiohttp

from .. import user_agent
from .auth import AuthProvider
from .exceptions import (
    GitHubConnectionError,
    GitHubError,
    GitHubTimeoutError,
    error_for_status,
)
from .transport import ConnectorFactory

logger = logging.getLogger(__name__)


@dataclass
class GitHubClientConfig:
    """Configuration for GitHub client."""

    base_url: str = "https://api.github.com"
    timeout: int = 30
    max_retries: int = 3
    retry_backoff_factor: float = 2.0
    max_concurrent_requests: int = 10


class GitHubClient:
    """Async GitHub REST client.

    Requests are authenticated through ``auth`` and, when a connector factory
    is given (SOCKS5 proxy), tunnelled through the connectors it builds.
    """

    def __init__(
        self,
        auth: AuthProvider,
        config: GitHubClientConfig | None = None,
        connector_factory: ConnectorFactory | None = None,
    ) -> None:
        """Initialize GitHub client.

        Args:
            auth: Authentication provider
            config: Client configuration
            connector_factory: Optional factory for the session connector
        """
        self.auth = auth
        self.config = config or GitHubClientConfig()
        self.connector_factory = connector_factory

        # HTTP session will be initialized on first use
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._request_semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)

    async def __aenter__(self) -> "GitHubClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure HTTP session is initialized."""
        if self._session is None or self._session.closed:
            async with self._session_lock:
                if self._session is None or self._session.closed:
                    if self.connector_factory is not None:
                        connector = self.connector_factory()
                    else:
                        connector = aiohttp.TCPConnector(limit=100, limit_per_host=30)

                    self._session = aiohttp.ClientSession(
                        timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                        connector=connector,
                        headers={
                            "User-Agent": user_agent(),
                            "Accept": "application/vnd.github+json",
                        },
                    )
        return self._session

    async def close(self) -> None:
        """Close HTTP session and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        authenticate: bool = True,
    ) -> Any:
        """Make an API request with retry logic and error handling.

        Connection failures, timeouts and 5xx responses are retried with
        exponential backoff; other error statuses raise immediately.

        Args:
            method: HTTP method
            path: API path (e.g. '/repos/owner/repo/check-runs')
            params: Query parameters
            data: JSON request body
            authenticate: Send the provider's Authorization header

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            GitHubError: Various GitHub API errors
        """
        url = urljoin(self.config.base_url.rstrip("/") + "/", path.lstrip("/"))
        correlation_id = str(uuid.uuid4())[:8]

        headers: dict[str, str] = {}
        if authenticate:
            token = await self.auth.get_token()
            headers.update(token.to_header())

        session = await self._ensure_session()

        last_exception: GitHubError | None = None
        for attempt in range(self.config.max_retries + 1):
            try:
                async with self._request_semaphore:
                    start_time = time.time()
                    logger.debug(
                        f"GitHub API request [{correlation_id}] {method} {url} "
                        f"(attempt {attempt + 1})"
                    )

                    async with session.request(
                        method, url, params=params, json=data, headers=headers
                    ) as response:
                        logger.debug(
                            f"GitHub API response [{correlation_id}] "
                            f"{response.status} in {time.time() - start_time:.2f}s"
                        )
                        if response.status == 204:
                            return None
                        if 200 <= response.status < 300:
                            return await response.json(content_type=None)
                        await self._handle_error_response(response, correlation_id)

            except GitHubError as e:
                if not e.retryable:
                    raise
                last_exception = e
            except TimeoutError:
                last_exception = GitHubTimeoutError(
                    f"Request timeout for {method} {url}"
                )
            except aiohttp.ClientError as e:
                last_exception = GitHubConnectionError(
                    f"Connection error for {method} {url}: {e}"
                )

            if attempt < self.config.max_retries:
                backoff_time = self.config.retry_backoff_factor**attempt
                logger.warning(
                    f"Request [{correlation_id}] failed (attempt {attempt + 1}), "
                    f"retrying in {backoff_time:.1f}s: {last_exception}"
                )
                await asyncio.sleep(backoff_time)

        if last_exception:
            raise last_exception
        raise GitHubError(f"Request failed after {self.config.max_retries} retries")

    async def _handle_error_response(
        self, response: aiohttp.ClientResponse, correlation_id: str
    ) -> None:
        """Raise the exception matching an error response."""
        try:
            error_data = await response.json(content_type=None)
        except (json.JSONDecodeError, aiohttp.ContentTypeError):
            error_data = None
        if not isinstance(error_data, dict):
            error_data = {"message": await response.text()}

        error = error_for_status(response.status, error_data)
        logger.warning(
            f"GitHub API error [{correlation_id}] {response.status}: {error}"
            + "".join(f"; {detail}" for detail in error.details)
        )
        raise error

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request to GitHub API."""
        return await self.request("GET", path, params=params)

    async def post(
        self,
        path: str,
        data: dict[str, Any] | None = None,
        authenticate: bool = True,
    ) -> Any:
        """Make POST request to GitHub API."""
        return await self.request("POST", path, data=data, authenticate=authenticate)

    async def patch(self, path: str, data: dict[str, Any] | None = None) -> Any:
        """Make PATCH request to GitHub API."""
        return await self.request("PATCH", path, data=data)

    async def get_pull(self, owner: str, repo: str, pull_number: int) -> dict[str, Any]:
        """Get specific pull request."""
        pull: dict[str, Any] = await self.get(
            f"/repos/{owner}/{repo}/pulls/{pull_number}"
        )
        return pull
