"""Orchestrator state model and its durable store.

The state is a single aggregate: the append-only fork chain, the index of
the current identity, the pool size and the time of the last rotation.
Callers load the whole aggregate, mutate a copy and save the whole
aggregate back; the store never merges.
"""

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

import orjson
from pydantic import BaseModel, Field, ValidationError
from structlog import get_logger

from fork_orchestrator.core.files import atomic_write_json, read_json
from fork_orchestrator.exceptions import LifecycleError, StateCorruptedError


logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class ForkStatus(StrEnum):
    """Lifecycle status of a fork-chain node."""

    SOURCE = "source"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    DISABLED = "disabled"


# Source and Disabled are terminal
ALLOWED_TRANSITIONS: dict[ForkStatus, frozenset[ForkStatus]] = {
    ForkStatus.SOURCE: frozenset(),
    ForkStatus.ACTIVE: frozenset({ForkStatus.EXHAUSTED, ForkStatus.DISABLED}),
    ForkStatus.EXHAUSTED: frozenset({ForkStatus.DISABLED}),
    ForkStatus.DISABLED: frozenset(),
}


class ForkChainNode(BaseModel):
    """One workspace in the fork chain."""

    identity_index: int = Field(..., ge=0, description="Pool index of the owning identity")
    username: str = Field(..., description="Display name of the owning identity")
    repo: str = Field(..., description="Repository identifier (owner/name)")
    parent: str | None = Field(default=None, description="Repository forked from")
    quota_used: float = Field(default=0.0, description="Last known hours-equivalent usage")
    status: ForkStatus
    created_at: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)

    def transition(self, status: ForkStatus) -> None:
        """Move to a new status, enforcing the lifecycle.

        Raises:
            LifecycleError: If the transition is not allowed
        """
        if status == self.status:
            return
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise LifecycleError(
                f"Fork {self.repo} cannot move from {self.status} to {status}",
                details={"repo": self.repo, "from": str(self.status), "to": str(status)},
            )
        self.status = status
        self.last_updated = utcnow()


class OrchestratorState(BaseModel):
    """Root aggregate and single source of truth for the next action."""

    fork_chain: list[ForkChainNode] = Field(default_factory=list)
    current_active_index: int = Field(default=0, ge=0)
    total_identities: int = Field(default=0, ge=0)
    last_rotation: datetime | None = None

    def copy_for_update(self) -> "OrchestratorState":
        """Deep copy to mutate before saving."""
        return self.model_copy(deep=True)

    def active_node(self) -> tuple[int, ForkChainNode] | None:
        """First Active node, or None when rotation has stalled."""
        for i, node in enumerate(self.fork_chain):
            if node.status == ForkStatus.ACTIVE:
                return i, node
        return None

    def source_node(self) -> ForkChainNode | None:
        for node in self.fork_chain:
            if node.status == ForkStatus.SOURCE:
                return node
        return None

    def find_repo(self, repo: str) -> tuple[int, ForkChainNode] | None:
        for i, node in enumerate(self.fork_chain):
            if node.repo.lower() == repo.lower():
                return i, node
        return None

    def nodes_with_status(self, status: ForkStatus) -> list[tuple[int, ForkChainNode]]:
        return [(i, n) for i, n in enumerate(self.fork_chain) if n.status == status]

    def count(self, status: ForkStatus) -> int:
        return sum(1 for n in self.fork_chain if n.status == status)


class StateStore:
    """Durable, atomic persistence of the orchestrator state."""

    def __init__(self, path: Path) -> None:
        """Initialize the store.

        Args:
            path: Canonical state file, usually ``<config>/cache/active.json``
        """
        self.path = path

    def load(self) -> OrchestratorState:
        """Load the persisted state.

        Returns:
            The stored state, or a fresh default when no file exists yet

        Raises:
            StateCorruptedError: If the file exists but cannot be parsed
        """
        if not self.path.exists():
            logger.info("state_file_not_found", path=str(self.path))
            return OrchestratorState()

        try:
            data = read_json(self.path)
            state = OrchestratorState.model_validate(data)
        except (OSError, orjson.JSONDecodeError, ValidationError) as e:
            logger.error("state_file_corrupt", path=str(self.path), error=str(e))
            raise StateCorruptedError(str(self.path), e) from e

        logger.debug("state_loaded", path=str(self.path), chain_length=len(state.fork_chain))
        return state

    def save(self, state: OrchestratorState) -> None:
        """Atomically replace the state file with the full aggregate."""
        atomic_write_json(self.path, state.model_dump(mode="json"))
        logger.info(
            "state_saved",
            path=str(self.path),
            chain_length=len(state.fork_chain),
            current_active_index=state.current_active_index,
        )
