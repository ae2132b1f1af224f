"""Rotation controller: the quota-driven decision loop.

A rotation marks the Active node Exhausted and advances the active-identity
pointer around the pool. It never creates the next fork; that is a separate,
explicit call to ``ForkLifecycleManager.create`` so the check stays safe to
run on a schedule.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from structlog import get_logger

from fork_orchestrator.core.retry import SleepFn
from fork_orchestrator.rotation.state import (
    ForkStatus,
    OrchestratorState,
    StateStore,
    utcnow,
)


if TYPE_CHECKING:
    from fork_orchestrator.monitor.alerts import AlertManager
    from fork_orchestrator.rotation.forks import ForkLifecycleManager
    from fork_orchestrator.rotation.identities import IdentityPool
    from fork_orchestrator.rotation.quota import QuotaMonitor, QuotaReport

logger = get_logger(__name__)


class RotationController:
    """Ties quota reports to lifecycle transitions and persistence."""

    def __init__(
        self,
        store: StateStore,
        identities: IdentityPool,
        quota: QuotaMonitor,
        lifecycle: ForkLifecycleManager,
        *,
        settle_seconds: float = 5.0,
        alerts: AlertManager | None = None,
        sleep: SleepFn = time.sleep,
    ) -> None:
        self.store = store
        self.identities = identities
        self.quota = quota
        self.lifecycle = lifecycle
        self.settle_seconds = settle_seconds
        self.alerts = alerts
        self._sleep = sleep

    def next_index(self, state: OrchestratorState, current: int) -> int:
        """Next identity index, treating the current pool as a ring."""
        return (current + 1) % len(self.identities)

    def check_and_rotate(
        self, state: OrchestratorState | None = None
    ) -> tuple[bool, OrchestratorState]:
        """Rotate away from the Active fork if its identity is exhausted.

        Args:
            state: Current state; loaded from the store when omitted

        Returns:
            Whether a rotation happened, and the resulting state
        """
        if state is None:
            state = self.store.load()

        found = state.active_node()
        if found is None:
            logger.info("no_active_fork")
            return False, state

        position, node = found
        identity = self.identities.get(node.identity_index)
        binding = self.lifecycle.binding_for(identity)

        report = self.quota.check(identity, binding)
        if not report.is_exhausted:
            logger.info(
                "rotation_not_needed",
                repo=node.repo,
                hours_equivalent=round(report.hours_equivalent, 2),
                is_warning=report.is_warning,
            )
            return False, state

        logger.info(
            "identity_exhausted",
            repo=node.repo,
            identity_index=identity.index,
            probe_failed=report.probe_failed,
        )

        self.lifecycle.disable_automation(node.repo, identity, binding)
        self._sleep(self.settle_seconds)

        new_state = state.copy_for_update()
        rotated = new_state.fork_chain[position]
        rotated.transition(ForkStatus.EXHAUSTED)
        if not report.probe_failed:
            rotated.quota_used = report.hours_equivalent

        next_index = self.next_index(new_state, node.identity_index)
        new_state.current_active_index = next_index
        new_state.total_identities = len(self.identities)
        new_state.last_rotation = utcnow()
        self.store.save(new_state)

        logger.info("rotated", repo=node.repo, next_index=next_index)
        self._notify(node.repo, report, next_index)
        return True, new_state

    def _notify(self, repo: str, report: QuotaReport, next_index: int) -> None:
        if self.alerts is None:
            return
        self.alerts.rotation(repo, report.username, next_index, report.probe_failed)
