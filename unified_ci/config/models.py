"""Pydantic configuration models for unified-ci.

The configuration hierarchy follows this structure:
- Config: Root configuration
- CoreConfig: store location, proxy, retries, working directories
- GitHubConfig: GitHub App credentials
- LogConfig: access and error log sinks
- HTTPConfig, QueueConfig, ScannerConfig: the remaining collaborators

Environment variables are substituted using the format ${VAR_NAME} with
optional defaults: ${VAR_NAME:default_value}
"""

import os
import re
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


class LogLevel(str, Enum):
    """Supported logging levels, most detailed first."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _substitute(value: Any) -> Any:
    if isinstance(value, str):

        def replacer(match: re.Match[str]) -> str:
            var_name, default_value = match.group(1), match.group(2)
            env_value = os.getenv(var_name)
            if env_value is not None:
                return env_value
            if default_value is not None:
                return default_value
            raise ValueError(f"Required environment variable '{var_name}' not found")

        return _ENV_PATTERN.sub(replacer, value)
    if isinstance(value, dict):
        return {k: _substitute(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute(item) for item in value]
    return value


class BaseConfigModel(BaseModel):
    """Base configuration model with environment variable substitution.

    Models are frozen: configuration is read-only once loaded. Use
    ``model_copy(update=...)`` to derive an overridden configuration.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def substitute_env_vars(cls, values: Any) -> Any:
        """Substitute ${VAR} and ${VAR:default} in string values."""
        if not isinstance(values, dict):
            return values
        return {key: _substitute(value) for key, value in values.items()}


class CoreConfig(BaseConfigModel):
    """Process-wide settings."""

    socks5_proxy: str = Field(
        default="", description="SOCKS5 endpoint for GitHub traffic (host:port)"
    )

    db_file: str = Field(
        default="unified-ci.db", description="Path of the persistent store file"
    )

    enable_retries: bool = Field(
        default=True, description="Periodically retry checks that failed"
    )

    retry_interval: int = Field(
        default=300, ge=1, description="Seconds between error message retries"
    )

    max_retries: int = Field(
        default=5, ge=0, le=100, description="Retries before a failed check is dropped"
    )

    work_dir: str = Field(
        default="/tmp/unified-ci/repos",  # nosec B108
        description="Directory holding working copies (<owner>/<repo>/<sha>)",
    )

    log_dir: str = Field(
        default="/tmp/unified-ci/logs",  # nosec B108
        description="Directory holding per-run check logs",
    )

    repo_ttl: int = Field(
        default=86400, ge=60, description="Seconds before a working copy is pruned"
    )

    watch_interval: int = Field(
        default=60, ge=1, description="Seconds between watcher passes"
    )

    public_url: str = Field(
        default="http://localhost:8099",
        description="Public base URL used for check run deep links",
    )

    worker_name: str = Field(default="worker", description="Name of this worker")

    server_url: str = Field(
        default="http://localhost:8099",
        description="Server base URL polled for jobs in worker mode",
    )

    worker_ttl: int = Field(
        default=180, ge=1, description="Seconds before a silent worker is dropped"
    )

    job_poll_interval: float = Field(
        default=5.0, gt=0, description="Idle delay between job polls in worker mode"
    )

    @field_validator("socks5_proxy")
    @classmethod
    def strip_proxy(cls, v: str) -> str:
        """Normalize empty proxy values."""
        return v.strip()


class GitHubConfig(BaseConfigModel):
    """GitHub App credentials."""

    app_id: int = Field(ge=1, description="GitHub App ID")

    private_key: SecretStr = Field(description="PEM encoded GitHub App private key")

    base_url: str = Field(
        default="https://api.github.com", description="GitHub API base URL"
    )

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, v: SecretStr) -> SecretStr:
        """Reject empty private keys."""
        if not v.get_secret_value().strip():
            raise ValueError("GitHub App private key cannot be empty")
        return v


class LogConfig(BaseConfigModel):
    """Access and error log sinks."""

    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="logging format string shared by both sinks",
    )

    access_log: str = Field(
        default="stdout", description="stdout, stderr, or a file path"
    )

    access_level: LogLevel = Field(default=LogLevel.INFO)

    error_log: str = Field(
        default="stderr", description="stdout, stderr, or a file path"
    )

    error_level: LogLevel = Field(default=LogLevel.ERROR)

    @field_validator("access_level", "error_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        """Accept lower case level tokens such as ``debug``."""
        if isinstance(v, str):
            return v.strip().upper()
        return v


class HTTPConfig(BaseConfigModel):
    """Embedded HTTP server."""

    host: str = Field(default="0.0.0.0")  # nosec B104
    port: int = Field(default=8099, ge=0, le=65535)


class QueueConfig(BaseConfigModel):
    """Message queue configuration."""

    url: str = Field(
        default="redis://localhost:6379/0", description="Queue connection URL"
    )

    topic: str = Field(
        default="unified-ci:checks", description="Topic consumed in local mode"
    )

    worker_topic: str = Field(
        default="unified-ci:worker-checks",
        description="Topic filled by the server and drained by workers",
    )

    poll_timeout: int = Field(
        default=1, ge=1, le=60, description="Blocking pop timeout in seconds"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only redis URLs are supported."""
        if urlparse(v).scheme not in ("redis", "rediss", "unix"):
            raise ValueError("Queue URL must use the redis:// scheme")
        return v


class ScannerConfig(BaseConfigModel):
    """Vulnerability scanner (riki) service."""

    url: str = Field(
        default="http://localhost:8080", description="Scanner service base URL"
    )

    poll_interval: float = Field(default=2.0, gt=0)

    query_timeout: float = Field(
        default=300.0, gt=0, description="Upper bound for a pending query"
    )

    timeout: int = Field(default=30, ge=1, description="Per request timeout")


class Config(BaseConfigModel):
    """Root configuration containing all subsystem configurations."""

    core: CoreConfig = Field(default_factory=CoreConfig)

    github: GitHubConfig

    log: LogConfig = Field(default_factory=LogConfig)

    http: HTTPConfig = Field(default_factory=HTTPConfig)

    queue: QueueConfig = Field(default_factory=QueueConfig)

    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
