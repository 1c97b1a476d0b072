"""
Shared pytest fixtures for unified-ci tests.

Why: Most components read the process-wide configuration, store, queue and
     working mode; tests need them installed and reset around each test.

What: Provides a throwaway GitHub App private key, a complete configuration
      rooted in tmp_path, in-memory fakes of the store and the message queue,
      and fixtures that reset module globals.

How: Generates an RSA key once per session with cryptography and uses
     monkeypatch so module globals never leak between tests.
"""

from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from unified_ci.checker import mode as mode_module
from unified_ci.checker.messages import CheckMessage
from unified_ci.config import loader as loader_module
from unified_ci.config.loader import ConfigurationLoader, set_config
from unified_ci.config.models import Config


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def config_data(tmp_path: Any, private_key_pem: str) -> dict[str, Any]:
    """Raw configuration document pointing every path into tmp_path."""
    return {
        "core": {
            "db_file": str(tmp_path / "unified-ci.db"),
            "work_dir": str(tmp_path / "repos"),
            "log_dir": str(tmp_path / "logs"),
            "public_url": "https://ci.example.com/",
            "retry_interval": 1,
            "max_retries": 2,
            "watch_interval": 1,
            "worker_name": "worker-1",
            "server_url": "http://server.test",
            "job_poll_interval": 0.01,
        },
        "github": {
            "app_id": 12345,
            "private_key": private_key_pem,
            "base_url": "https://api.github.test",
        },
        "queue": {"url": "redis://localhost:6379/0"},
        "scanner": {"url": "http://riki.test", "poll_interval": 0.01},
    }


@pytest.fixture
def config(config_data: dict[str, Any]) -> Config:
    return Config(**config_data)


@pytest.fixture
def loaded_config(monkeypatch: pytest.MonkeyPatch, config: Config) -> Config:
    """Install ``config`` as the process configuration for one test."""
    monkeypatch.setattr(loader_module, "_loader", ConfigurationLoader())
    return set_config(config)


@pytest.fixture(autouse=True)
def reset_working_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(mode_module, "_working_mode", None)


class FakeStore:
    """Dict backed stand-in for :class:`unified_ci.store.Store`."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def put(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def scan(self, prefix: str) -> list[tuple[str, str]]:
        return sorted((k, v) for k, v in self.data.items() if k.startswith(prefix))


class FakeQueue:
    """List backed stand-in for :class:`unified_ci.message_queue.MessageQueue`."""

    def __init__(self) -> None:
        self.topics: dict[str, list[CheckMessage]] = {}

    async def publish(self, topic: str, message: CheckMessage) -> None:
        self.topics.setdefault(topic, []).append(message)

    async def pop(self, topic: str, timeout: int | None = None) -> CheckMessage | None:
        messages = self.topics.get(topic)
        if not messages:
            return None
        return messages.pop(0)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def check_message() -> CheckMessage:
    return CheckMessage(
        id="msg-1",
        installation_id=99,
        owner="octo",
        repo="widgets",
        pull_number=7,
    )
