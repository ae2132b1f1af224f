"""Command-line interface; the entry point is ``fork_orchestrator.cli.main:main``."""

from .main import app, app_main


__all__ = [
    "app",
    "app_main",
]
