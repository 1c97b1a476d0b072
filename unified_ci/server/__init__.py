"""Embedded HTTP server."""

from .app import create_app
from .http import HTTPServer

__all__ = ["HTTPServer", "create_app"]
