"""Log sinks.

Two process-wide sinks are configured from ``LogConfig``:

- ``log_access``: informational traffic (startup, task lifecycle, requests)
- ``log_error``: failures reported by tasks and checks

Each check run additionally writes a plain-text log file that the HTTP server
serves back to users through the check run's details URL.
"""

import logging
import sys
from pathlib import Path
from typing import TextIO

from .config.models import LogConfig

ACCESS_LOGGER = "unified_ci.access"
ERROR_LOGGER = "unified_ci.error"

log_access = logging.getLogger(ACCESS_LOGGER)
log_error = logging.getLogger(ERROR_LOGGER)


def _make_handler(target: str, fmt: str) -> logging.Handler:
    handler: logging.Handler
    if target == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    elif target == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    else:
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(target, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _configure(logger: logging.Logger, target: str, level: str, fmt: str) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(_make_handler(target, fmt))
    logger.setLevel(level)
    logger.propagate = False


def init_log(config: LogConfig) -> None:
    """Configure the access and error sinks.

    Other package loggers (``logging.getLogger(__name__)``) follow the access
    level through the root logger.

    Raises:
        OSError: If a log file cannot be opened
    """
    _configure(log_access, config.access_log, config.access_level.value, config.format)
    _configure(log_error, config.error_log, config.error_level.value, config.format)

    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(_make_handler(config.access_log, config.format))
    root.setLevel(config.access_level.value)


def run_log_path(log_dir: str | Path, owner: str, repo: str, sha: str) -> Path:
    """Return the per-run log file of a checked revision."""
    return Path(log_dir) / owner / repo / f"{sha}.log"


def open_run_log(log_dir: str | Path, owner: str, repo: str, sha: str) -> TextIO:
    """Open (append) the per-run log file, creating parent directories."""
    path = run_log_path(log_dir, owner, repo, sha)
    path.parent.mkdir(parents=True, exist_ok=True)
    return open(path, "a", encoding="utf-8")
