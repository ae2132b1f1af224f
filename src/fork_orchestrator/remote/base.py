"""Remote workspace service boundary.

This module provides the canonical definition of the operations the
orchestrator needs from the hosting service. The HTTP implementation lives
in ``fork_orchestrator.remote.github``; tests substitute in-memory fakes.

Implementations route every call through the retry executor and follow the
same failure contract: recoverable conditions raise, terminal "not found"
conditions return an empty result (``False`` / ``None``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from fork_orchestrator.rotation.identities import Identity
    from fork_orchestrator.rotation.proxies import ProxyBinding


__all__ = [
    "ClientFactory",
    "RemoteWorkspaceClient",
    "RunStatus",
    "UsageItem",
]


@dataclass(frozen=True)
class UsageItem:
    """One line of the metered usage report."""

    product: str
    unit_type: str
    quantity: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UsageItem:
        return cls(
            product=str(data["product"]),
            unit_type=str(data["unitType"]),
            quantity=float(data["quantity"]),
        )


@dataclass(frozen=True)
class RunStatus:
    """Status of one automation run."""

    status: str
    conclusion: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


class RemoteWorkspaceClient(ABC):
    """Operations on remote workspaces, bound to one identity.

    Clients are context managers so that callers release transport
    resources once an operation completes.
    """

    def close(self) -> None:
        """Release transport resources."""

    def __enter__(self) -> RemoteWorkspaceClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @abstractmethod
    def get_username(self) -> str:
        """Resolve the display name of the bound identity."""

    @abstractmethod
    def exists(self, repo: str) -> bool:
        """Whether a workspace with this identifier exists."""

    @abstractmethod
    def create_fork(self, parent_repo: str) -> str:
        """Request a fork of parent_repo; returns the new identifier."""

    @abstractmethod
    def delete(self, repo: str) -> None:
        """Irreversibly delete a workspace."""

    @abstractmethod
    def get_automation_trigger_id(self, repo: str, file_hint: str) -> int | None:
        """Find the automation trigger whose path contains file_hint."""

    @abstractmethod
    def enable_automation(self, repo: str, trigger_id: int) -> None:
        """Enable a trigger; enabling an enabled trigger succeeds."""

    @abstractmethod
    def disable_automation(self, repo: str, trigger_id: int) -> None:
        """Disable a trigger; disabling a disabled trigger succeeds."""

    @abstractmethod
    def get_usage(self, username: str) -> list[UsageItem]:
        """Fetch the metered usage report for an identity."""

    @abstractmethod
    def trigger_automation(self, repo: str, file_hint: str, ref: str) -> None:
        """Dispatch a run of the automation on a ref."""

    @abstractmethod
    def get_latest_run_id(self, repo: str) -> int | None:
        """Identifier of the most recent automation run, if any."""

    @abstractmethod
    def get_run_status(self, repo: str, run_id: int) -> RunStatus:
        """Current status of an automation run."""


ClientFactory = Callable[["Identity", "ProxyBinding | None"], RemoteWorkspaceClient]
