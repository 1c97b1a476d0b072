"""HTTP API.

- ``GET /`` and ``GET /health``: banner and liveness
- ``GET /logs/{owner}/{repo}/{sha}``: per-run check log (check run details URL)
- ``POST /api/checks``: queue a check (local and server modes)
- ``GET /api/jobs/next``, ``POST /api/jobs/failed``: job hand-out to workers
  (server mode)
"""

import re

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.responses import PlainTextResponse

from .. import __version__, user_agent
from ..checker.messages import CheckMessage
from ..checker.mode import WorkingMode
from ..checker.subscription import save_error_message
from ..config.models import Config
from ..logs import log_access, log_error, run_log_path
from ..message_queue import MessageQueue, QueueError, get_message_queue
from ..store import Store, StoreError, get_store
from ..worker.watchers import record_heartbeat

_SEGMENT = re.compile(r"^[A-Za-z0-9_.-]+$")


def _safe_segment(value: str) -> str:
    if not _SEGMENT.match(value) or value.startswith("."):
        raise HTTPException(status_code=404, detail="Not Found")
    return value


def create_app(
    mode: WorkingMode,
    config: Config,
    queue: MessageQueue | None = None,
    store: Store | None = None,
) -> FastAPI:
    """Build the API of a process running in ``mode``.

    ``queue`` and ``store`` default to the process-wide instances, resolved
    per request.
    """
    app = FastAPI(title="unified-ci", version=__version__)

    def _queue() -> MessageQueue:
        try:
            return queue or get_message_queue()
        except QueueError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

    def _store() -> Store:
        try:
            return store or get_store()
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

    def _require(*modes: WorkingMode) -> None:
        if mode not in modes:
            raise HTTPException(
                status_code=404, detail=f"Not available in {mode.value} mode"
            )

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return user_agent() + "\n"

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "mode": mode.value, "version": __version__}

    @app.get("/logs/{owner}/{repo}/{sha}", response_class=PlainTextResponse)
    async def run_log(owner: str, repo: str, sha: str) -> str:
        path = run_log_path(
            config.core.log_dir,
            _safe_segment(owner),
            _safe_segment(repo),
            _safe_segment(sha),
        )
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Log not found")
        return path.read_text(encoding="utf-8", errors="replace")

    @app.post("/api/checks", status_code=202)
    async def queue_check(message: CheckMessage) -> dict[str, str]:
        _require(WorkingMode.LOCAL, WorkingMode.SERVER)
        topic = (
            config.queue.worker_topic
            if mode == WorkingMode.SERVER
            else config.queue.topic
        )
        try:
            await _queue().publish(topic, message)
        except QueueError as e:
            log_error.error(f"Queueing check {message.id} failed: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        log_access.info(
            f"Queued check of {message.full_name}#{message.pull_number} on {topic}"
        )
        return {"id": message.id, "topic": topic}

    @app.get("/api/jobs/next", response_model=None)
    async def next_job(worker: str = Query(min_length=1)) -> CheckMessage | Response:
        _require(WorkingMode.SERVER)
        try:
            await record_heartbeat(_store(), worker)
            message = await _queue().pop(config.queue.worker_topic)
        except (QueueError, StoreError) as e:
            log_error.error(f"Handing out job to {worker} failed: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        if message is None:
            return Response(status_code=204)
        log_access.info(f"Job {message.id} handed to worker {worker}")
        return message

    @app.post("/api/jobs/failed", status_code=202)
    async def failed_job(
        message: CheckMessage, worker: str = Query(min_length=1)
    ) -> dict[str, str]:
        _require(WorkingMode.SERVER)
        try:
            await save_error_message(_store(), message)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        log_access.info(f"Worker {worker} reported job {message.id} as failed")
        return {"id": message.id}

    return app
