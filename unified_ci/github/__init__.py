"""GitHub API client package."""

from .app import GitHubApp, close_jwt_client, get_app, init_jwt_client
from .auth import AuthProvider, AuthToken, GitHubAppAuth, InstallationAuth
from .client import GitHubClient, GitHubClientConfig
from .exceptions import (
    GitHubAuthenticationError,
    GitHubConnectionError,
    GitHubError,
    GitHubNotFoundError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubValidationError,
    error_for_status,
)
from .transport import ConnectorFactory, socks5_connector_factory

__all__ = [
    "AuthProvider",
    "AuthToken",
    "ConnectorFactory",
    "GitHubApp",
    "GitHubAppAuth",
    "GitHubAuthenticationError",
    "GitHubClient",
    "GitHubClientConfig",
    "GitHubConnectionError",
    "GitHubError",
    "GitHubNotFoundError",
    "GitHubServerError",
    "GitHubTimeoutError",
    "GitHubValidationError",
    "InstallationAuth",
    "close_jwt_client",
    "error_for_status",
    "get_app",
    "init_jwt_client",
    "socks5_connector_factory",
]
