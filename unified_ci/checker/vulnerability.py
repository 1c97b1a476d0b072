"""Dependency vulnerability check.

Detects the dependency manifests of a working copy, has the scanner resolve
them and publishes the findings as the ``vulnerability`` check run.
"""

import os
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol, TextIO

from ..logs import log_error
from ..utils import file_exists
from ..vulnerability.models import Ecosystem, Finding
from ..vulnerability.riki import create_scanner
from .check_runs import CheckRunService
from .ref import GithubRef

CHECK_NAME = "vulnerability"


class Scanner(Protocol):
    """Operations of a scanner session the check depends on."""

    async def __aenter__(self) -> "Scanner": ...

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None: ...

    async def check_packages(self, ecosystem: Ecosystem, manifest_path: str) -> Any: ...

    async def wait_for_query(self) -> None: ...

    async def query(self, ecosystem: Ecosystem) -> list[Finding]: ...


ScannerFactory = Callable[[str], Scanner]


def _report(log: TextIO, message: str) -> None:
    log.write(message + "\n")
    log_error.error(message)


async def check_vulnerability(scanner: Scanner, repo_path: str) -> list[Finding]:
    """Scan the manifests found in ``repo_path``.

    Ecosystems are probed and submitted in :class:`Ecosystem` order and their
    findings collected in that same order. Without any manifest the scanner is
    not contacted at all.

    Raises:
        Exception: Any submission, wait, or query failure of the scanner
    """
    submitted: list[Ecosystem] = []
    for ecosystem in Ecosystem:
        manifest = os.path.join(repo_path, ecosystem.manifest)
        if file_exists(manifest):
            # the acknowledgement is tracked by the scanner session itself
            await scanner.check_packages(ecosystem, manifest)
            submitted.append(ecosystem)

    findings: list[Finding] = []
    if submitted:
        await scanner.wait_for_query()
        for ecosystem in submitted:
            findings.extend(await scanner.query(ecosystem))
    return findings


def render_report(findings: list[Finding]) -> tuple[str, str]:
    """Return the ``(conclusion, message)`` published for ``findings``."""
    if not findings:
        return "success", "no vulnerabilities"

    message = findings[0].md_title()
    for finding in findings:
        message += finding.md_table_row()
    return "failure", message


async def vulnerability_check_run(
    checks: CheckRunService,
    pull: dict[str, Any],
    ref: GithubRef,
    repo_path: str,
    target_url: str,
    log: TextIO,
    scanner_factory: ScannerFactory | None = None,
) -> int:
    """Check package vulnerabilities of a pull request and report them.

    The check run is announced before scanning. If that first creation fails
    the scan still runs and the check run is created once more afterwards, so
    the verdict is not lost.

    Args:
        checks: Check run adapter of the repository's installation
        pull: Pull request payload
        ref: Revision under examination; ``ref.repo`` is the scanner project
        repo_path: Working copy of the revision
        target_url: Details URL of the check run
        log: Per-run log writer
        scanner_factory: Builds the scanner session of a project

    Returns:
        Number of vulnerabilities found

    Raises:
        Exception: The scanning or GitHub failure that ended the check
    """
    scanner_factory = scanner_factory or create_scanner

    check_run_id = 0
    try:
        check_run = await checks.create_check_run(pull, CHECK_NAME, ref, target_url)
    except Exception as e:
        _report(log, f"Creating {CHECK_NAME} check run failed: {e}")
    else:
        check_run_id = check_run.get("id") or 0

    try:
        async with scanner_factory(ref.repo) as scanner:
            findings = await check_vulnerability(scanner, repo_path)
    except Exception as e:
        _report(log, f"checks package vulnerability failed: {e}")
        if check_run_id:
            await checks.update_check_run_with_error(
                pull, check_run_id, CHECK_NAME, CHECK_NAME, e
            )
        raise

    if not check_run_id:
        try:
            check_run = await checks.create_check_run(
                pull, CHECK_NAME, ref, target_url
            )
        except Exception as e:
            _report(log, f"Creating {CHECK_NAME} check run failed: {e}")
            raise
        check_run_id = check_run.get("id") or 0

    conclusion, message = render_report(findings)
    try:
        await checks.update_check_run(
            pull,
            check_run_id,
            CHECK_NAME,
            conclusion,
            datetime.now(UTC),
            conclusion,
            message,
            None,
        )
    except Exception as e:
        _report(log, f"report package vulnerability to github failed: {e}")
        raise

    return len(findings)
