"""Client for the riki vulnerability scanner service.

The scanner keeps state per project and ecosystem: manifests are submitted,
the scanner resolves them asynchronously, and the findings of each ecosystem
are then queried once every pending query has completed.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

import aiohttp

from .. import user_agent
from ..config.models import ScannerConfig
from .exceptions import ScannerError, ScannerTimeoutError
from .models import Ecosystem, Finding

logger = logging.getLogger(__name__)


class RikiScanner:
    """Scanner session for one project.

    Submission acknowledgements carry the id of the query the scanner started;
    they are kept here so :meth:`wait_for_query` can poll them, callers do not
    need to keep them.
    """

    def __init__(
        self,
        project_name: str,
        base_url: str,
        poll_interval: float = 2.0,
        query_timeout: float = 300.0,
        timeout: int = 30,
    ):
        self.project_name = project_name
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.query_timeout = query_timeout
        self.timeout = timeout
        self._pending: list[str] = []
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "RikiScanner":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def _project_url(self) -> str:
        return f"{self.base_url}/api/v1/projects/{quote(self.project_name, safe='')}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": user_agent()},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        session = self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise ScannerError(
                        f"scanner returned HTTP {response.status}: {text.strip()}",
                        response.status,
                    )
                return await response.json(content_type=None)
        except TimeoutError as e:
            raise ScannerTimeoutError(f"scanner request timed out: {url}") from e
        except aiohttp.ClientError as e:
            raise ScannerError(f"scanner request failed: {e}") from e

    async def check_packages(
        self, ecosystem: Ecosystem, manifest_path: str | Path
    ) -> dict[str, Any]:
        """Submit a manifest file to be scanned.

        Returns:
            The scanner's acknowledgement

        Raises:
            ScannerError: If the manifest cannot be read or is rejected
        """
        try:
            content = Path(manifest_path).read_bytes()
        except OSError as e:
            raise ScannerError(f"failed to read {manifest_path}: {e}") from e

        form = aiohttp.FormData()
        form.add_field("ecosystem", ecosystem.value)
        form.add_field(
            "file",
            content,
            filename=Path(manifest_path).name,
            content_type="application/octet-stream",
        )

        ack: dict[str, Any] = await self._request(
            "POST", f"{self._project_url}/packages", data=form
        )
        query_id = ack.get("query_id")
        if query_id:
            self._pending.append(str(query_id))
        logger.debug(
            f"Submitted {ecosystem.value} manifest of {self.project_name} "
            f"(query {query_id})"
        )
        return ack

    async def _wait_pending(self) -> None:
        while self._pending:
            query_id = self._pending[0]
            status = await self._request(
                "GET", f"{self.base_url}/api/v1/queries/{quote(query_id, safe='')}"
            )
            state = status.get("status")
            if state == "done":
                self._pending.pop(0)
                continue
            if state == "failed":
                self._pending.pop(0)
                raise ScannerError(
                    f"scanner query {query_id} failed: {status.get('error', '')}"
                )
            await asyncio.sleep(self.poll_interval)

    async def wait_for_query(self) -> None:
        """Block until every submitted manifest has been scanned.

        Raises:
            ScannerTimeoutError: If the queries are still pending after
                ``query_timeout`` seconds
            ScannerError: If a query failed
        """
        try:
            await asyncio.wait_for(self._wait_pending(), timeout=self.query_timeout)
        except TimeoutError as e:
            raise ScannerTimeoutError(
                f"scanner queries of {self.project_name} still pending after "
                f"{self.query_timeout:.0f}s"
            ) from e

    async def query(self, ecosystem: Ecosystem) -> list[Finding]:
        """Fetch the findings of one ecosystem."""
        data = await self._request(
            "GET",
            f"{self._project_url}/vulnerabilities",
            params={"ecosystem": ecosystem.value},
        )
        records = data.get("vulnerabilities") if isinstance(data, dict) else data
        findings = []
        for record in records or []:
            finding = Finding.model_validate(record)
            if finding.ecosystem is None:
                finding = finding.model_copy(update={"ecosystem": ecosystem})
            findings.append(finding)
        return findings


_scanner_config = ScannerConfig()


def configure_scanner(config: ScannerConfig) -> None:
    """Set the scanner service used by :func:`create_scanner`."""
    global _scanner_config
    _scanner_config = config


def create_scanner(project_name: str) -> RikiScanner:
    """Create a scanner session for ``project_name`` with the configured service."""
    return RikiScanner(
        project_name,
        _scanner_config.url,
        poll_interval=_scanner_config.poll_interval,
        query_timeout=_scanner_config.query_timeout,
        timeout=_scanner_config.timeout,
    )
