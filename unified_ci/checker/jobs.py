"""Worker side of the server's job API.

Workers do not talk to the message queue: they poll the server, which pops
jobs from the worker topic on their behalf and records their heartbeat.
"""

from typing import Any

import aiohttp

from .. import user_agent
from .messages import CheckMessage


class JobError(Exception):
    """Raised when the server answers with something that is not a job."""


class JobClient:
    """HTTP client of ``/api/jobs`` on the server."""

    def __init__(self, server_url: str, worker_name: str, timeout: int = 30):
        self.server_url = server_url.rstrip("/")
        self.worker_name = worker_name
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "JobClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": user_agent()},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def next_job(self) -> CheckMessage | None:
        """Fetch the next job, or None when the server has none.

        Raises:
            aiohttp.ClientError: On connection failures and error statuses
            JobError: If the body is not a valid job
        """
        async with self._get_session().get(
            f"{self.server_url}/api/jobs/next", params={"worker": self.worker_name}
        ) as response:
            if response.status == 204:
                return None
            response.raise_for_status()
            try:
                return CheckMessage.model_validate(await response.json())
            except ValueError as e:
                raise JobError(f"Malformed job from {self.server_url}: {e}") from e

    async def report_failure(self, message: CheckMessage) -> None:
        """Hand a failed job back to the server for a later retry.

        Raises:
            aiohttp.ClientError: On connection failures and error statuses
        """
        async with self._get_session().post(
            f"{self.server_url}/api/jobs/failed",
            params={"worker": self.worker_name},
            json=message.model_dump(mode="json"),
        ) as response:
            response.raise_for_status()
