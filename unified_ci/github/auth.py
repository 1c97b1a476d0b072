"""GitHub authentication handlers.

unified-ci authenticates as a GitHub App: the app signs short-lived JWTs with
its private key, and exchanges them for installation tokens that are used for
every repository level call (check runs, pull requests).
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import jwt

from .exceptions import GitHubAuthenticationError

# Refresh installation tokens this many seconds before GitHub expires them
TOKEN_EXPIRY_MARGIN = 60


@dataclass
class AuthToken:
    """Authentication token with metadata."""

    token: str
    token_type: str = "Bearer"
    expires_at: int | None = None

    @property
    def is_expired(self) -> bool:
        """Check if token is expired."""
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at

    def to_header(self) -> dict[str, str]:
        """Convert to authorization header."""
        return {"Authorization": f"{self.token_type} {self.token}"}


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    async def get_token(self) -> AuthToken:
        """Get a valid authentication token, refreshing it when needed."""

    @abstractmethod
    async def refresh_token(self) -> AuthToken:
        """Force a new token."""


class GitHubAppAuth(AuthProvider):
    """Authenticates as the GitHub App itself using RS256 JWTs."""

    def __init__(self, app_id: int, private_key: str):
        """Initialize GitHub App authentication.

        Args:
            app_id: GitHub App ID
            private_key: PEM private key used for JWT signing
        """
        if not private_key:
            raise GitHubAuthenticationError("GitHub App private key is required")
        self.app_id = app_id
        self.private_key = private_key
        self._current_token: AuthToken | None = None

    def generate_jwt(self) -> str:
        """Generate JWT for GitHub App authentication.

        Raises:
            GitHubAuthenticationError: If the private key cannot sign
        """
        now = int(time.time())
        payload = {
            "iat": now - 60,  # tolerate clock drift
            "exp": now + 540,  # GitHub caps app JWTs at 10 minutes
            "iss": str(self.app_id),
        }

        try:
            return jwt.encode(payload, self.private_key, algorithm="RS256")
        except Exception as e:
            raise GitHubAuthenticationError(f"Failed to generate JWT: {e}") from e

    async def get_token(self) -> AuthToken:
        if self._current_token and not self._current_token.is_expired:
            return self._current_token
        return await self.refresh_token()

    async def refresh_token(self) -> AuthToken:
        self._current_token = AuthToken(
            token=self.generate_jwt(),
            token_type="Bearer",  # nosec B106
            expires_at=int(time.time()) + 480,
        )
        return self._current_token


TokenExchange = Callable[[int], Awaitable[dict[str, Any]]]


class InstallationAuth(AuthProvider):
    """Installation access token obtained through the app's JWT.

    Args:
        installation_id: GitHub App installation ID
        exchange: Coroutine creating an access token for an installation,
            returning GitHub's ``{"token": ..., "expires_at": ...}`` payload
    """

    def __init__(self, installation_id: int, exchange: TokenExchange):
        self.installation_id = installation_id
        self._exchange = exchange
        self._current_token: AuthToken | None = None

    async def get_token(self) -> AuthToken:
        if self._current_token and not self._current_token.is_expired:
            return self._current_token
        return await self.refresh_token()

    async def refresh_token(self) -> AuthToken:
        data = await self._exchange(self.installation_id)
        token = data.get("token")
        if not token:
            raise GitHubAuthenticationError(
                f"No access token returned for installation {self.installation_id}"
            )

        expires_at = None
        if data.get("expires_at"):
            expires = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
            expires_at = int(expires.timestamp()) - TOKEN_EXPIRY_MARGIN

        self._current_token = AuthToken(
            token=token,
            token_type="token",  # nosec B106
            expires_at=expires_at,
        )
        return self._current_token
