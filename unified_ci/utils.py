"""Small helpers shared by checks and long-running tasks."""

import asyncio
import os


def file_exists(path: str | os.PathLike[str]) -> bool:
    """Return True if ``path`` names an existing regular file.

    Never raises: unreadable or malformed paths are reported as missing.
    """
    try:
        return os.path.isfile(path)
    except (OSError, ValueError):
        return False


async def sleep_until_stopped(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep for ``seconds`` or until ``stop`` is set.

    Returns:
        True if the stop event fired, False if the full interval elapsed
    """
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
        return True
    except TimeoutError:
        return False
