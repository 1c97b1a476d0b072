"""uvicorn-backed HTTP server task."""

import asyncio
import contextlib
import logging
from collections.abc import Iterator

import uvicorn
from fastapi import FastAPI

logger = logging.getLogger(__name__)


class _Server(uvicorn.Server):
    """uvicorn server leaving signal handling to the supervisor."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


class HTTPServer:
    """Serves ``app`` until :meth:`shutdown` is requested."""

    def __init__(self, app: FastAPI, host: str, port: int):
        self.app = app
        self.host = host
        self.port = port
        self._server: _Server | None = None
        self._done = asyncio.Event()

    async def serve(self, stop: asyncio.Event) -> None:
        """Run the server.

        The server is stopped by :meth:`shutdown`, not by ``stop``, so that
        in-flight requests are drained within the shutdown deadline.

        Raises:
            RuntimeError: If the server fails to start (e.g. port in use)
        """
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_config=None,
            access_log=False,
        )
        self._server = _Server(config)
        logger.info(f"HTTP server listening on {self.host}:{self.port}")
        try:
            await self._server.serve()
        except SystemExit as e:
            # uvicorn exits when it cannot bind
            raise RuntimeError(f"HTTP server failed on {self.host}:{self.port}") from e
        finally:
            self._done.set()

        if not self._server.should_exit:
            raise RuntimeError("HTTP server stopped unexpectedly")

    async def shutdown(self, timeout: float) -> None:
        """Ask the server to exit and wait up to ``timeout`` seconds for it.

        Raises:
            TimeoutError: If the server is still running after ``timeout``
        """
        if self._server is None:
            return
        self._server.should_exit = True
        await asyncio.wait_for(self._done.wait(), timeout=timeout)
