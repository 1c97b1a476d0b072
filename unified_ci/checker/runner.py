"""Run the checks of one check message."""

import os
from pathlib import Path

from .. import user_agent
from ..config.loader import get_config
from ..github.app import get_app
from ..logs import log_access, open_run_log
from .check_runs import CheckRunService
from .messages import CheckMessage
from .ref import GithubRef
from .vulnerability import vulnerability_check_run


class CheckError(Exception):
    """Raised when a check message cannot be processed."""


def working_copy_path(work_dir: str | Path, owner: str, repo: str, sha: str) -> Path:
    """Return the working copy location of a revision under ``work_dir``."""
    return Path(work_dir) / owner / repo / sha


def details_url(public_url: str, ref: GithubRef) -> str:
    """Return the URL serving the per-run log of ``ref``."""
    return f"{public_url.rstrip('/')}/logs/{ref.owner}/{ref.repo}/{ref.sha}"


async def run_checks(message: CheckMessage) -> int:
    """Check the pull request named by ``message``.

    Returns:
        Number of problems reported

    Raises:
        CheckError: If the working copy is missing
        Exception: Failures of GitHub, the scanner, or the log file
    """
    config = get_config()
    client = await get_app().installation_client(message.installation_id)

    pull = await client.get_pull(message.owner, message.repo, message.pull_number)
    ref = GithubRef.from_pull(pull, message.sha)

    repo_path = message.repo_path or str(
        working_copy_path(config.core.work_dir, ref.owner, ref.repo, ref.sha)
    )
    if not os.path.isdir(repo_path):
        raise CheckError(
            f"working copy of {ref.full_name}@{ref.sha} not found: {repo_path}"
        )

    log_access.info(
        f"Checking {ref.full_name}#{message.pull_number} at {ref.sha} "
        f"(attempt {message.attempts + 1})"
    )
    with open_run_log(config.core.log_dir, ref.owner, ref.repo, ref.sha) as log:
        log.write(f"{user_agent()}\nchecking {ref.full_name}@{ref.sha}\n")
        problems = await vulnerability_check_run(
            CheckRunService(client),
            pull,
            ref,
            repo_path,
            details_url(config.core.public_url, ref),
            log,
        )
        log.write(f"vulnerability: {problems} problem(s)\n")

    log_access.info(f"Checked {ref.full_name}@{ref.sha}: {problems} problem(s)")
    return problems
