"""Repository watchers of the local and server modes."""

from .watchers import (
    expire_workers,
    prune_working_copies,
    record_heartbeat,
    watch_local_repo,
    watch_server_worker_repo,
)

__all__ = [
    "expire_workers",
    "prune_working_copies",
    "record_heartbeat",
    "watch_local_repo",
    "watch_server_worker_repo",
]
