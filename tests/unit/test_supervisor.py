"""
Unit tests for the process supervisor.

Why: The supervisor decides which tasks run in each working mode and owns the
     graceful shutdown; mistakes there either leave work undone or hang the
     process on exit.

What: Tests the mode plans, the supervision scope, signal-triggered and
      error-triggered shutdown, the drain deadline, and initialization order.

How: Runs supervise() with fake tasks and a fake HTTP server, and replaces
     the collaborator initializers with recorders.
"""

import asyncio
import os
import signal
import sys
import time
from typing import Any

import pytest

from unified_ci import message_queue, store
from unified_ci import supervisor as supervisor_module
from unified_ci.checker.mode import WorkingMode
from unified_ci.config.models import Config
from unified_ci.supervisor import (
    PlannedTask,
    StartupError,
    SupervisionScope,
    Supervisor,
    build_plan,
)


class FakeHTTPServer:
    """Serves until shutdown() is called, like the uvicorn task."""

    def __init__(self, fail_shutdown: bool = False) -> None:
        self.shutdown_calls: list[float] = []
        self.fail_shutdown = fail_shutdown
        self._exit = asyncio.Event()

    async def serve(self, stop: asyncio.Event) -> None:
        await self._exit.wait()

    async def shutdown(self, timeout: float) -> None:
        self.shutdown_calls.append(timeout)
        self._exit.set()
        if self.fail_shutdown:
            raise RuntimeError("listener already closed")


async def wait_for_stop(stop: asyncio.Event) -> None:
    await stop.wait()


def plan_names(mode: WorkingMode, enable_retries: bool) -> list[str]:
    return [task.name for task in build_plan(mode, enable_retries, FakeHTTPServer())]


class TestBuildPlan:
    """Test the task plan of each working mode."""

    @pytest.mark.parametrize(
        "mode,enable_retries,expected",
        [
            (
                WorkingMode.LOCAL,
                True,
                [
                    "retry-errors",
                    "message-subscription",
                    "local-repo-watcher",
                    "http-server",
                ],
            ),
            (
                WorkingMode.LOCAL,
                False,
                ["message-subscription", "local-repo-watcher", "http-server"],
            ),
            (
                WorkingMode.SERVER,
                True,
                ["retry-errors", "server-worker-repo-watcher", "http-server"],
            ),
            (
                WorkingMode.SERVER,
                False,
                ["server-worker-repo-watcher", "http-server"],
            ),
            (
                WorkingMode.WORKER,
                True,
                ["worker-message-subscription", "http-server"],
            ),
            (
                WorkingMode.WORKER,
                False,
                ["worker-message-subscription", "http-server"],
            ),
        ],
    )
    def test_plan(
        self, mode: WorkingMode, enable_retries: bool, expected: list[str]
    ) -> None:
        """
        Why: Each mode must start exactly its own tasks, with retries only
             when enabled and the HTTP server in every mode.
        What: Tests the ordered task names for every mode and retry setting.
        How: Calls build_plan with a fake HTTP server.
        """
        assert plan_names(mode, enable_retries) == expected

    def test_http_server_task_is_serve(self) -> None:
        server = FakeHTTPServer()
        plan = build_plan(WorkingMode.WORKER, False, server)
        assert plan[-1].target == server.serve


class TestSupervisionScope:
    """Test the stop event shared by supervised tasks."""

    async def test_task_error_cancels_scope(self) -> None:
        async def boom(stop: asyncio.Event) -> None:
            raise RuntimeError("boom")

        scope = SupervisionScope()
        scope.go("waiter", wait_for_stop)
        scope.go("boom", boom)

        await asyncio.wait_for(scope.wait(), timeout=5)

        assert scope.cancelled
        assert [str(e) for e in scope.errors] == ["boom"]

    async def test_all_tasks_returning_cancels_scope(self) -> None:
        async def quick(stop: asyncio.Event) -> None:
            return None

        scope = SupervisionScope()
        scope.go("quick", quick)
        await asyncio.wait_for(scope.wait(), timeout=5)

        assert scope.cancelled
        assert scope.errors == []


class TestSupervise:
    """Test shutdown coordination."""

    @pytest.fixture
    def server(self) -> FakeHTTPServer:
        return FakeHTTPServer()

    @pytest.fixture
    def supervisor(self, config: Config, server: FakeHTTPServer) -> Supervisor:
        return Supervisor(config, WorkingMode.LOCAL, http_server=server)

    async def test_shutdown_request_stops_everything(
        self, supervisor: Supervisor, server: FakeHTTPServer
    ) -> None:
        """
        Why: A signal must stop every task and shut the HTTP server down once
             with the 60 second deadline.
        What: Tests that a shutdown request cancels the scope, calls shutdown
              exactly once with 60.0 and waits for every task.
        How: Requests shutdown from a timer while two tasks wait on stop.
        """
        plan = [
            PlannedTask("a", wait_for_stop),
            PlannedTask("b", wait_for_stop),
            PlannedTask("http-server", server.serve),
        ]
        asyncio.get_running_loop().call_later(0.05, supervisor.request_shutdown)

        await asyncio.wait_for(supervisor.supervise(plan), timeout=5)

        assert supervisor.scope is not None
        assert supervisor.scope.cancelled
        assert server.shutdown_calls == [60.0]
        assert all(task.done() for task in supervisor.scope._tasks)

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
    async def test_sigterm_triggers_shutdown(
        self, supervisor: Supervisor, server: FakeHTTPServer
    ) -> None:
        plan = [PlannedTask("a", wait_for_stop), PlannedTask("http", server.serve)]
        asyncio.get_running_loop().call_later(
            0.05, os.kill, os.getpid(), signal.SIGTERM
        )

        await asyncio.wait_for(supervisor.supervise(plan), timeout=5)

        assert server.shutdown_calls == [60.0]

    async def test_task_error_triggers_shutdown(
        self, supervisor: Supervisor, server: FakeHTTPServer
    ) -> None:
        """
        Why: A failing task must bring the whole process down instead of
             leaving it half running.
        What: Tests that a raising task cancels the scope and the HTTP server
              is still shut down once.
        How: Supervises a task that raises right away.
        """

        async def broken(stop: asyncio.Event) -> None:
            raise OSError("work dir is gone")

        plan = [
            PlannedTask("waiter", wait_for_stop),
            PlannedTask("broken", broken),
            PlannedTask("http-server", server.serve),
        ]

        await asyncio.wait_for(supervisor.supervise(plan), timeout=5)

        assert supervisor.scope is not None
        assert supervisor.scope.cancelled
        assert [str(e) for e in supervisor.scope.errors] == ["work dir is gone"]
        assert server.shutdown_calls == [60.0]

    async def test_shutdown_failure_does_not_block_exit(
        self, config: Config
    ) -> None:
        server = FakeHTTPServer(fail_shutdown=True)
        supervisor = Supervisor(config, WorkingMode.LOCAL, http_server=server)
        plan = [PlannedTask("a", wait_for_stop), PlannedTask("http", server.serve)]
        asyncio.get_running_loop().call_later(0.05, supervisor.request_shutdown)

        await asyncio.wait_for(supervisor.supervise(plan), timeout=5)

        assert server.shutdown_calls == [60.0]

    async def test_drain_deadline(
        self, supervisor: Supervisor, server: FakeHTTPServer
    ) -> None:
        """
        Why: A task ignoring the stop event must not keep the process alive
             past the drain deadline.
        What: Tests that supervise() returns once drain_timeout elapses.
        How: Supervises a task sleeping far longer than a shortened deadline.
        """

        async def stubborn(stop: asyncio.Event) -> None:
            await asyncio.sleep(30)

        supervisor.drain_timeout = 0.1
        plan = [PlannedTask("stubborn", stubborn), PlannedTask("http", server.serve)]
        asyncio.get_running_loop().call_later(0.05, supervisor.request_shutdown)

        started = time.monotonic()
        await asyncio.wait_for(supervisor.supervise(plan), timeout=5)

        assert time.monotonic() - started < 5
        assert server.shutdown_calls == [60.0]

        assert supervisor.scope is not None
        for task in supervisor.scope._tasks:
            task.cancel()
        await asyncio.gather(*supervisor.scope._tasks, return_exceptions=True)


class TestInitialize:
    """Test collaborator initialization."""

    @pytest.fixture
    def calls(self, monkeypatch: pytest.MonkeyPatch) -> list[tuple[Any, ...]]:
        calls: list[tuple[Any, ...]] = []

        def fake_init_log(config: Any) -> None:
            calls.append(("log",))

        def fake_init_jwt_client(
            app_id: int, private_key: str, connector_factory: Any, base_url: str
        ) -> None:
            calls.append(("jwt", app_id, connector_factory is not None, base_url))

        async def fake_store_init(db_file: str) -> None:
            calls.append(("store", db_file))

        async def fake_queue_init(url: str, poll_timeout: int) -> None:
            calls.append(("queue", url))

        def fake_configure_scanner(config: Any) -> None:
            calls.append(("scanner", config.url))

        monkeypatch.setattr(supervisor_module, "init_log", fake_init_log)
        monkeypatch.setattr(supervisor_module, "init_jwt_client", fake_init_jwt_client)
        monkeypatch.setattr(store, "init", fake_store_init)
        monkeypatch.setattr(message_queue, "init_message_queue", fake_queue_init)
        monkeypatch.setattr(
            supervisor_module, "configure_scanner", fake_configure_scanner
        )
        return calls

    async def test_local_mode_order(
        self, config: Config, calls: list[tuple[Any, ...]]
    ) -> None:
        """
        Why: Collaborators depend on each other (logs first, the proxy before
             the GitHub client), so the order is part of the contract.
        What: Tests the initialization order in local mode.
        How: Records each initializer call.
        """
        supervisor = Supervisor(config, WorkingMode.LOCAL, http_server=FakeHTTPServer())
        await supervisor.initialize()

        assert calls == [
            ("log",),
            ("jwt", 12345, False, "https://api.github.test"),
            ("store", config.core.db_file),
            ("queue", "redis://localhost:6379/0"),
            ("scanner", "http://riki.test"),
        ]

    async def test_worker_mode_skips_queue(
        self, config: Config, calls: list[tuple[Any, ...]]
    ) -> None:
        supervisor = Supervisor(
            config, WorkingMode.WORKER, http_server=FakeHTTPServer()
        )
        await supervisor.initialize()

        assert [call[0] for call in calls] == ["log", "jwt", "store", "scanner"]

    async def test_proxy_is_passed_to_github_client(
        self, config: Config, calls: list[tuple[Any, ...]]
    ) -> None:
        core = config.core.model_copy(update={"socks5_proxy": "127.0.0.1:1080"})
        config = config.model_copy(update={"core": core})

        supervisor = Supervisor(config, WorkingMode.LOCAL, http_server=FakeHTTPServer())
        await supervisor.initialize()

        assert ("jwt", 12345, True, "https://api.github.test") in calls

    async def test_bad_proxy_fails_startup(
        self, config: Config, calls: list[tuple[Any, ...]]
    ) -> None:
        """
        Why: An unusable proxy must stop the process before anything talks to
             GitHub without it.
        What: Tests that an invalid SOCKS5 endpoint raises StartupError and no
              later collaborator is initialized.
        How: Configures a proxy without a port.
        """
        core = config.core.model_copy(update={"socks5_proxy": "proxy.internal"})
        config = config.model_copy(update={"core": core})

        supervisor = Supervisor(config, WorkingMode.LOCAL, http_server=FakeHTTPServer())
        with pytest.raises(StartupError, match="Setup proxy failed"):
            await supervisor.initialize()

        assert calls == [("log",)]

    async def test_store_failure_fails_startup(
        self,
        config: Config,
        calls: list[tuple[Any, ...]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def broken_store(db_file: str) -> None:
            raise store.StoreError("disk full")

        monkeypatch.setattr(store, "init", broken_store)

        supervisor = Supervisor(config, WorkingMode.LOCAL, http_server=FakeHTTPServer())
        with pytest.raises(StartupError, match="disk full"):
            await supervisor.initialize()

        assert ("queue", "redis://localhost:6379/0") not in calls
