"""Process supervisor.

Initializes the process-wide collaborators, starts the long-running tasks of
the working mode under one supervision scope, and coordinates their shutdown.

Every task receives the scope's stop event and must return promptly once it
is set. The scope is cancelled exactly once: when SIGINT/SIGTERM arrives, when
a task raises, or when every task has returned.
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import NamedTuple, Protocol

from . import message_queue, store
from .checker.mode import WorkingMode
from .checker.subscription import (
    retry_error_messages,
    start_message_subscription,
    start_worker_message_subscription,
)
from .config.models import Config
from .github.app import close_jwt_client, init_jwt_client
from .github.transport import ConnectorFactory, socks5_connector_factory
from .logs import init_log, log_access, log_error
from .server.app import create_app
from .server.http import HTTPServer
from .vulnerability.riki import configure_scanner
from .worker.watchers import watch_local_repo, watch_server_worker_repo

logger = logging.getLogger(__name__)

TaskTarget = Callable[[asyncio.Event], Awaitable[None]]


class PlannedTask(NamedTuple):
    """A long-running task of a mode plan."""

    name: str
    target: TaskTarget


class StartupError(Exception):
    """Raised when a collaborator cannot be initialized."""


class ServerTask(Protocol):
    """What the supervisor needs from the HTTP server."""

    async def serve(self, stop: asyncio.Event) -> None: ...

    async def shutdown(self, timeout: float) -> None: ...


def build_plan(
    mode: WorkingMode, enable_retries: bool, http_server: ServerTask
) -> list[PlannedTask]:
    """Return the tasks to start in ``mode``, in start order.

    Every mode ends with the HTTP server.
    """
    tasks: list[PlannedTask] = []
    if mode == WorkingMode.LOCAL:
        if enable_retries:
            tasks.append(PlannedTask("retry-errors", retry_error_messages))
        tasks.append(PlannedTask("message-subscription", start_message_subscription))
        tasks.append(PlannedTask("local-repo-watcher", watch_local_repo))
    elif mode == WorkingMode.SERVER:
        if enable_retries:
            tasks.append(PlannedTask("retry-errors", retry_error_messages))
        tasks.append(
            PlannedTask("server-worker-repo-watcher", watch_server_worker_repo)
        )
    elif mode == WorkingMode.WORKER:
        tasks.append(
            PlannedTask(
                "worker-message-subscription", start_worker_message_subscription
            )
        )
    else:
        raise ValueError(f"Unknown working mode: {mode}")

    tasks.append(PlannedTask("http-server", http_server.serve))
    return tasks


class SupervisionScope:
    """Stop event plus the tasks started under it.

    A task raising cancels the scope; so does the last task returning.
    """

    def __init__(self) -> None:
        self.stop = asyncio.Event()
        self.errors: list[BaseException] = []
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def cancelled(self) -> bool:
        return self.stop.is_set()

    def cancel(self) -> None:
        self.stop.set()

    def go(self, name: str, target: TaskTarget) -> None:
        """Start ``target(stop)`` as a member of the scope."""
        self._tasks.append(asyncio.create_task(self._run(name, target), name=name))

    async def _run(self, name: str, target: TaskTarget) -> None:
        logger.debug(f"Task {name} started")
        try:
            await target(self.stop)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.errors.append(e)
            log_error.error(f"Task {name} failed: {e}")
            self.cancel()
        else:
            logger.debug(f"Task {name} returned")

    async def wait(self) -> None:
        """Wait until every task has exited, then cancel the scope."""
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self.cancel()


class Supervisor:
    """Runs one process in one working mode."""

    shutdown_timeout = 60.0
    drain_timeout = 60.0

    def __init__(
        self,
        config: Config,
        mode: WorkingMode,
        http_server: ServerTask | None = None,
    ):
        self.config = config
        self.mode = mode
        self.http_server = http_server or HTTPServer(
            create_app(mode, config), config.http.host, config.http.port
        )
        self.scope: SupervisionScope | None = None
        self._shutdown = asyncio.Event()

    async def start(self) -> None:
        """Initialize, run until shutdown, and release everything."""
        try:
            await self.initialize()
            await self.run()
        finally:
            await self.cleanup()

    async def initialize(self) -> None:
        """Initialize collaborators in dependency order.

        Raises:
            StartupError: If any collaborator cannot be initialized
        """
        try:
            init_log(self.config.log)
        except OSError as e:
            raise StartupError(f"Setup logs failed: {e}") from e
        log_access.info(f"Working in {self.mode.value} mode")

        connector_factory: ConnectorFactory | None = None
        if self.config.core.socks5_proxy:
            try:
                connector_factory = socks5_connector_factory(
                    self.config.core.socks5_proxy
                )
            except ValueError as e:
                raise StartupError(f"Setup proxy failed: {e}") from e

        try:
            init_jwt_client(
                self.config.github.app_id,
                self.config.github.private_key.get_secret_value(),
                connector_factory,
                self.config.github.base_url,
            )
        except Exception as e:
            raise StartupError(f"Setup GitHub App client failed: {e}") from e

        try:
            await store.init(self.config.core.db_file)
        except store.StoreError as e:
            raise StartupError(str(e)) from e

        if self.mode in (WorkingMode.LOCAL, WorkingMode.SERVER):
            try:
                await message_queue.init_message_queue(
                    self.config.queue.url, self.config.queue.poll_timeout
                )
            except message_queue.QueueError as e:
                raise StartupError(str(e)) from e

        configure_scanner(self.config.scanner)

    async def run(self) -> None:
        """Start the mode plan and supervise it until shutdown."""
        plan = build_plan(self.mode, self.config.core.enable_retries, self.http_server)
        await self.supervise(plan)

    def request_shutdown(self) -> None:
        """Begin a graceful shutdown (signal handler)."""
        self._shutdown.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # not supported off the main thread or on this platform
                logger.debug(f"Cannot handle {sig.name} in this event loop")

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

    async def supervise(self, tasks: list[PlannedTask]) -> None:
        """Run ``tasks`` under a new scope until a signal or the scope ends it."""
        scope = self.scope = SupervisionScope()
        for task in tasks:
            scope.go(task.name, task.target)
        leave = asyncio.create_task(scope.wait(), name="leave")

        self._install_signal_handlers()
        try:
            waiters = [
                asyncio.create_task(self._shutdown.wait()),
                asyncio.create_task(scope.stop.wait()),
            ]
            _, pending = await asyncio.wait(
                waiters, return_when=asyncio.FIRST_COMPLETED
            )
            for waiter in pending:
                waiter.cancel()

            if self._shutdown.is_set():
                log_access.info("Shutdown requested")
            scope.cancel()

            try:
                await self.http_server.shutdown(self.shutdown_timeout)
            except Exception as e:
                log_error.error(f"Error in ShutdownHTTPServer: {e}")

            try:
                await asyncio.wait_for(
                    asyncio.shield(leave), timeout=self.drain_timeout
                )
            except TimeoutError:
                log_access.info("Waiting for leave times out.")
        finally:
            self._remove_signal_handlers()

    async def cleanup(self) -> None:
        """Release the queue, the store and the GitHub clients."""
        for name, release in (
            ("message queue", message_queue.close_message_queue),
            ("store", store.deinit),
            ("GitHub App client", close_jwt_client),
        ):
            try:
                await release()
            except Exception as e:
                log_error.error(f"Error closing {name}: {e}")
