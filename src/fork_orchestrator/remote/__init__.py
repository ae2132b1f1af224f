"""Remote workspace service boundary and its GitHub adapter."""

from fork_orchestrator.remote.base import (
    ClientFactory,
    RemoteWorkspaceClient,
    RunStatus,
    UsageItem,
)


__all__ = [
    "ClientFactory",
    "RemoteWorkspaceClient",
    "RunStatus",
    "UsageItem",
]
