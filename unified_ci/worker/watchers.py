"""Repository watchers.

Both watchers run until their stop event fires and raise the error that made
them give up, which ends the supervision scope.
"""

import asyncio
import logging
import shutil
import time
from pathlib import Path

from ..config.loader import get_config
from ..logs import log_access
from ..store import Store, get_store
from ..utils import sleep_until_stopped

logger = logging.getLogger(__name__)

WORKER_KEY_PREFIX = "worker:"


def prune_working_copies(work_dir: Path, ttl: float, now: float | None = None) -> int:
    """Remove ``<owner>/<repo>/<sha>`` working copies untouched for ``ttl`` seconds.

    Emptied owner and repo directories are removed as well.

    Returns:
        Number of removed working copies
    """
    now = time.time() if now is None else now
    removed = 0
    for owner_dir in [p for p in work_dir.iterdir() if p.is_dir()]:
        for repo_dir in [p for p in owner_dir.iterdir() if p.is_dir()]:
            for copy_dir in [p for p in repo_dir.iterdir() if p.is_dir()]:
                if now - copy_dir.stat().st_mtime > ttl:
                    shutil.rmtree(copy_dir)
                    logger.debug(f"Pruned working copy {copy_dir}")
                    removed += 1
            if not any(repo_dir.iterdir()):
                repo_dir.rmdir()
        if not any(owner_dir.iterdir()):
            owner_dir.rmdir()
    return removed


async def watch_local_repo(stop: asyncio.Event) -> None:
    """Keep the local working directory tidy until ``stop`` is set.

    Raises:
        OSError: If the working directory cannot be created or scanned
    """
    config = get_config()
    work_dir = Path(config.core.work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)
    log_access.info(f"Watching local repositories in {work_dir}")

    while True:
        removed = await asyncio.to_thread(
            prune_working_copies, work_dir, config.core.repo_ttl
        )
        if removed:
            log_access.info(f"Pruned {removed} expired working copies")
        if await sleep_until_stopped(stop, config.core.watch_interval):
            return


async def record_heartbeat(store: Store, worker: str, now: float | None = None) -> None:
    """Remember that ``worker`` was seen at ``now``."""
    now = time.time() if now is None else now
    await store.put(WORKER_KEY_PREFIX + worker, str(now))


async def expire_workers(
    store: Store, ttl: float, now: float | None = None
) -> list[str]:
    """Forget workers silent for more than ``ttl`` seconds.

    Returns:
        Names of the workers still online
    """
    now = time.time() if now is None else now
    online = []
    for key, value in await store.scan(WORKER_KEY_PREFIX):
        name = key[len(WORKER_KEY_PREFIX) :]
        try:
            last_seen = float(value)
        except ValueError:
            last_seen = 0.0
        if now - last_seen > ttl:
            await store.delete(key)
            log_access.info(f"Worker {name} went offline")
        else:
            online.append(name)
    return online


async def watch_server_worker_repo(stop: asyncio.Event) -> None:
    """Track the workers polling this server until ``stop`` is set.

    Raises:
        StoreError: If the store is not available
    """
    config = get_config()
    store = get_store()
    log_access.info("Watching server workers")

    known: list[str] = []
    while True:
        online = await expire_workers(store, config.core.worker_ttl)
        if online != known:
            log_access.info(f"Online workers: {', '.join(online) or 'none'}")
            known = online
        if await sleep_until_stopped(stop, config.core.watch_interval):
            return
