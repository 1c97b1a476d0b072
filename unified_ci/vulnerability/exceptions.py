"""Vulnerability scanner exceptions."""


class ScannerError(Exception):
    """Raised when the scanner rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ScannerTimeoutError(ScannerError):
    """Raised when a submitted query does not complete in time."""
