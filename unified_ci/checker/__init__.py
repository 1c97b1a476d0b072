"""Checks run against pull requests and their reporting to GitHub."""

from .check_runs import CheckRunService
from .messages import CheckMessage
from .mode import WorkingMode, get_working_mode, set_working_mode
from .ref import GithubRef
from .vulnerability import CHECK_NAME, check_vulnerability, vulnerability_check_run

__all__ = [
    "CHECK_NAME",
    "CheckMessage",
    "CheckRunService",
    "GithubRef",
    "WorkingMode",
    "check_vulnerability",
    "get_working_mode",
    "set_working_mode",
    "vulnerability_check_run",
]
