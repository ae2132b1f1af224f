"""Core utilities shared across the orchestrator packages."""

from fork_orchestrator.core.files import atomic_write_json, read_json
from fork_orchestrator.core.logging import setup_logging


__all__ = [
    "atomic_write_json",
    "read_json",
    "setup_logging",
]
