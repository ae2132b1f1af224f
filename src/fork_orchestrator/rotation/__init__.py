"""Fork rotation: identities, proxy bindings, quota, lifecycle and control loop.

This module keeps a chain of forks alive by moving to the next identity
whenever the active one has spent its metered quota.
"""

from fork_orchestrator.rotation.controller import RotationController
from fork_orchestrator.rotation.forks import ForkLifecycleManager, expected_fork_name
from fork_orchestrator.rotation.identities import (
    Identity,
    IdentityPool,
    load_identity_pool,
)
from fork_orchestrator.rotation.proxies import ProxyBinding, ProxyBindingManager
from fork_orchestrator.rotation.quota import QuotaMonitor, QuotaReport
from fork_orchestrator.rotation.state import (
    ForkChainNode,
    ForkStatus,
    OrchestratorState,
    StateStore,
)


__all__ = [
    "ForkChainNode",
    "ForkLifecycleManager",
    "ForkStatus",
    "Identity",
    "IdentityPool",
    "OrchestratorState",
    "ProxyBinding",
    "ProxyBindingManager",
    "QuotaMonitor",
    "QuotaReport",
    "RotationController",
    "StateStore",
    "expected_fork_name",
    "load_identity_pool",
]
