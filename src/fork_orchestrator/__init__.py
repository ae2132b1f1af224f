"""Fork orchestrator - quota-driven identity rotation for chains of forked workspaces."""

from ._version import __version__


__all__ = ["__version__"]
