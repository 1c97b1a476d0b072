"""Process-wide GitHub App client.

``init_jwt_client`` is called once during startup. Checks then ask the app for
an installation client of the repository they report to.
"""

import asyncio
import logging
from typing import Any

from .auth import GitHubAppAuth, InstallationAuth
from .client import GitHubClient, GitHubClientConfig
from .exceptions import GitHubError
from .transport import ConnectorFactory

logger = logging.getLogger(__name__)


class GitHubApp:
    """GitHub App identity and its per-installation clients."""

    def __init__(
        self,
        app_id: int,
        private_key: str,
        connector_factory: ConnectorFactory | None = None,
        config: GitHubClientConfig | None = None,
    ):
        self.app_id = app_id
        self.config = config or GitHubClientConfig()
        self.connector_factory = connector_factory
        self.auth = GitHubAppAuth(app_id, private_key)
        self.client = GitHubClient(self.auth, self.config, connector_factory)
        self._installations: dict[int, GitHubClient] = {}
        self._lock = asyncio.Lock()

    async def create_installation_token(self, installation_id: int) -> dict[str, Any]:
        """Exchange the app JWT for an installation access token."""
        data: dict[str, Any] = await self.client.post(
            f"/app/installations/{installation_id}/access_tokens"
        )
        return data

    async def installation_client(self, installation_id: int) -> GitHubClient:
        """Return the (cached) client acting as ``installation_id``."""
        async with self._lock:
            client = self._installations.get(installation_id)
            if client is None:
                auth = InstallationAuth(installation_id, self.create_installation_token)
                client = GitHubClient(auth, self.config, self.connector_factory)
                self._installations[installation_id] = client
            return client

    async def close(self) -> None:
        """Close the app client and every installation client."""
        for client in [self.client, *self._installations.values()]:
            await client.close()
        self._installations.clear()


_app: GitHubApp | None = None


def init_jwt_client(
    app_id: int,
    private_key: str,
    connector_factory: ConnectorFactory | None = None,
    base_url: str | None = None,
) -> GitHubApp:
    """Create the process-wide GitHub App client.

    A JWT is signed eagerly so that an unusable private key fails at startup.

    Raises:
        GitHubAuthenticationError: If the private key cannot sign JWTs
    """
    global _app

    config = GitHubClientConfig(base_url=base_url) if base_url else None
    app = GitHubApp(app_id, private_key, connector_factory, config)
    app.auth.generate_jwt()
    _app = app
    logger.debug(f"GitHub App {app_id} client initialized")
    return app


def get_app() -> GitHubApp:
    """Get the process-wide GitHub App client.

    Raises:
        GitHubError: If ``init_jwt_client`` has not been called
    """
    if _app is None:
        raise GitHubError("GitHub App client not initialized")
    return _app


async def close_jwt_client() -> None:
    """Release the process-wide GitHub App client."""
    global _app

    if _app is not None:
        await _app.close()
        _app = None
