"""
Unit tests for the GitHub error hierarchy.

Why: The client decides whether to retry from the error class, and check run
     failures are reported with GitHub's own messages.

What: Tests status to error mapping, the retryable flags and field details.

How: Builds errors from response payloads directly.
"""

import pytest

from unified_ci.github.exceptions import (
    GitHubAuthenticationError,
    GitHubConnectionError,
    GitHubError,
    GitHubNotFoundError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubValidationError,
    error_for_status,
)


class TestErrorForStatus:
    @pytest.mark.parametrize(
        "status,error_class",
        [
            (401, GitHubAuthenticationError),
            (403, GitHubAuthenticationError),
            (404, GitHubNotFoundError),
            (422, GitHubValidationError),
            (409, GitHubError),
            (500, GitHubServerError),
            (503, GitHubServerError),
        ],
    )
    def test_maps_status(self, status: int, error_class: type[GitHubError]) -> None:
        error = error_for_status(status, {"message": "nope"})

        assert type(error) is error_class
        assert error.status_code == status
        assert str(error) == "nope"

    def test_missing_message(self) -> None:
        assert str(error_for_status(502, {})) == "HTTP 502"


class TestRetryable:
    def test_only_transient_errors_are_retried(self) -> None:
        assert GitHubServerError("x").retryable
        assert GitHubConnectionError("x").retryable
        assert GitHubTimeoutError("x").retryable
        assert not GitHubValidationError("x").retryable
        assert not GitHubAuthenticationError("x").retryable
        assert not GitHubError("x").retryable


class TestDetails:
    def test_field_errors(self) -> None:
        """
        Why: A 422 on a check run only says "Validation Failed"; the reason
             is in the errors list.
        What: Tests that dict, string and empty entries are flattened.
        How: Uses a payload shaped like GitHub's validation responses.
        """
        error = error_for_status(
            422,
            {
                "message": "Validation Failed",
                "errors": [
                    {"resource": "CheckRun", "code": "invalid"},
                    {"message": "output.summary is too long"},
                    "head_sha is missing",
                    {},
                ],
            },
        )

        assert error.details == [
            "invalid",
            "output.summary is too long",
            "head_sha is missing",
        ]

    def test_no_errors(self) -> None:
        assert GitHubError("x").details == []
