"""Explicit wiring of the orchestrator components.

Commands resolve settings once and build an ``OrchestratorContext``; every
component receives what it needs from it at construction time.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from structlog import get_logger

from fork_orchestrator.config.settings import Settings
from fork_orchestrator.core.retry import SleepFn
from fork_orchestrator.monitor.alerts import AlertManager
from fork_orchestrator.monitor.health import HealthMonitor
from fork_orchestrator.remote.base import ClientFactory
from fork_orchestrator.remote.github import github_client_factory
from fork_orchestrator.rotation.controller import RotationController
from fork_orchestrator.rotation.forks import ForkLifecycleManager
from fork_orchestrator.rotation.identities import IdentityPool, load_identity_pool
from fork_orchestrator.rotation.proxies import ProxyBindingManager
from fork_orchestrator.rotation.quota import QuotaMonitor
from fork_orchestrator.rotation.state import StateStore


logger = get_logger(__name__)


@dataclass
class OrchestratorContext:
    """Configuration and collaborators threaded through one invocation."""

    settings: Settings
    store: StateStore
    identities: IdentityPool
    proxies: ProxyBindingManager
    client_factory: ClientFactory
    alerts: AlertManager = field(default_factory=AlertManager)
    sleep: SleepFn = time.sleep

    @classmethod
    def from_settings(
        cls, settings: Settings, *, sleep: SleepFn = time.sleep
    ) -> OrchestratorContext:
        """Build the default wiring: files from ``settings.paths``, GitHub over httpx.

        Raises:
            ConfigurationError: If tokens or the proxy cache cannot be read
        """
        paths = settings.paths
        identities = load_identity_pool(paths.tokens_file, paths.name_cache_file)

        proxies = ProxyBindingManager(
            paths.proxy_cache_file,
            probe_url=settings.proxy.probe_url,
            probe_timeout=settings.proxy.probe_timeout,
        )
        proxies.load_cache()

        client_factory = github_client_factory(
            retry=settings.retry.to_retry_config(),
            api_url=settings.forks.api_url,
            timeout=settings.forks.request_timeout,
            sleep=sleep,
        )

        logger.debug(
            "context_created",
            config_dir=str(paths.config_dir),
            identities=len(identities),
            proxies=len(proxies),
        )
        return cls(
            settings=settings,
            store=StateStore(paths.state_file),
            identities=identities,
            proxies=proxies,
            client_factory=client_factory,
            alerts=AlertManager(settings.alerts),
            sleep=sleep,
        )

    def quota_monitor(self) -> QuotaMonitor:
        return QuotaMonitor(self.client_factory, self.settings.quota)

    def lifecycle(self) -> ForkLifecycleManager:
        return ForkLifecycleManager(
            self.store,
            self.client_factory,
            self.identities,
            self.proxies,
            self.settings.forks,
            sleep=self.sleep,
        )

    def controller(self) -> RotationController:
        return RotationController(
            self.store,
            self.identities,
            self.quota_monitor(),
            self.lifecycle(),
            settle_seconds=self.settings.forks.rotation_settle_seconds,
            alerts=self.alerts,
            sleep=self.sleep,
        )

    def health_monitor(self) -> HealthMonitor:
        return HealthMonitor(self.identities, self.quota_monitor(), self.proxies, sleep=self.sleep)
