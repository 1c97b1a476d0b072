"""Working mode of the process."""

from enum import Enum


class WorkingMode(str, Enum):
    """Top-level operating profile selecting the tasks the supervisor starts."""

    LOCAL = "local"
    SERVER = "server"
    WORKER = "worker"


_working_mode: WorkingMode | None = None


def set_working_mode(mode: WorkingMode) -> None:
    """Set the process working mode.

    The mode is written once during startup; setting it again to the same
    value is a no-op.

    Raises:
        RuntimeError: If a different mode is already active
    """
    global _working_mode

    if _working_mode is not None and _working_mode != mode:
        raise RuntimeError(
            f"Working mode already set to {_working_mode.value}, cannot switch "
            f"to {mode.value}"
        )
    _working_mode = mode


def get_working_mode() -> WorkingMode:
    """Get the process working mode.

    Raises:
        RuntimeError: If the mode has not been set
    """
    if _working_mode is None:
        raise RuntimeError("Working mode not set")
    return _working_mode
