"""Check runs on GitHub.

Each check publishes one check run per pull request revision: it is created
``in_progress`` when the check starts and completed with a conclusion and a
Markdown report when it ends.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from ..github.client import GitHubClient
from ..github.exceptions import GitHubError
from .ref import GithubRef

logger = logging.getLogger(__name__)

# GitHub limits check run output text fields to 65535 characters
MAX_OUTPUT_LENGTH = 65535

# GitHub has no "errored" conclusion; errored runs ask for user action
ERRORED_CONCLUSION = "action_required"


def _repo_path(pull: dict[str, Any]) -> str:
    return f"/repos/{pull['base']['repo']['full_name']}"


def _truncate(text: str) -> str:
    # Cuts the tail only: reports keep their table header and leading rows in order
    if len(text) <= MAX_OUTPUT_LENGTH:
        return text
    suffix = "\n\n... (truncated)"
    return text[: MAX_OUTPUT_LENGTH - len(suffix)] + suffix


def _timestamp(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class CheckRunService:
    """Creates and completes check runs through an installation client."""

    def __init__(self, client: GitHubClient):
        self.client = client

    async def create_check_run(
        self,
        pull: dict[str, Any],
        name: str,
        ref: GithubRef,
        target_url: str,
    ) -> dict[str, Any]:
        """Create an ``in_progress`` check run on the revision of ``ref``.

        Raises:
            GitHubError: If GitHub rejects the request
        """
        data = {
            "name": name,
            "head_sha": ref.sha,
            "status": "in_progress",
            "details_url": target_url,
            "external_id": str(pull.get("number", "")),
            "started_at": _timestamp(datetime.now(UTC)),
        }
        check_run: dict[str, Any] = await self.client.post(
            f"{_repo_path(pull)}/check-runs", data
        )
        logger.debug(f"Created {name} check run {check_run.get('id')} for {ref.sha}")
        return check_run

    async def update_check_run(
        self,
        pull: dict[str, Any],
        check_run_id: int,
        name: str,
        conclusion: str,
        completed_at: datetime,
        title: str,
        summary: str,
        annotations: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Complete a check run with ``conclusion`` and a Markdown report.

        Raises:
            GitHubError: If GitHub rejects the request
        """
        output: dict[str, Any] = {"title": title, "summary": _truncate(summary)}
        if annotations:
            output["annotations"] = annotations

        data = {
            "name": name,
            "status": "completed",
            "conclusion": conclusion,
            "completed_at": _timestamp(completed_at),
            "output": output,
        }
        check_run: dict[str, Any] = await self.client.patch(
            f"{_repo_path(pull)}/check-runs/{check_run_id}", data
        )
        return check_run

    async def update_check_run_with_error(
        self,
        pull: dict[str, Any],
        check_run_id: int,
        name: str,
        title: str,
        error: BaseException,
    ) -> bool:
        """Mark a check run as errored with the text of ``error``.

        Failures are logged and reported through the return value only.
        """
        try:
            await self.update_check_run(
                pull,
                check_run_id,
                name,
                ERRORED_CONCLUSION,
                datetime.now(UTC),
                f"{title} errored",
                str(error),
            )
        except GitHubError as e:
            logger.error(f"Marking {name} check run {check_run_id} errored failed: {e}")
            return False
        return True
