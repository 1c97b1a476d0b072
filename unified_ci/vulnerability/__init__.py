"""Dependency vulnerability scanning."""

from .exceptions import ScannerError, ScannerTimeoutError
from .models import Ecosystem, Finding
from .riki import RikiScanner, configure_scanner, create_scanner

__all__ = [
    "Ecosystem",
    "Finding",
    "RikiScanner",
    "ScannerError",
    "ScannerTimeoutError",
    "configure_scanner",
    "create_scanner",
]
