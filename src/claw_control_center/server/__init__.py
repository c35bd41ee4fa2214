"""HTTP server for the control center."""

from .api import create_app

__all__ = ["create_app"]
