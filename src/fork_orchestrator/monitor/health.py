"""Pool-wide quota overview."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from structlog import get_logger

from fork_orchestrator.core.retry import SleepFn


if TYPE_CHECKING:
    from fork_orchestrator.rotation.identities import Identity, IdentityPool
    from fork_orchestrator.rotation.proxies import ProxyBindingManager
    from fork_orchestrator.rotation.quota import QuotaMonitor, QuotaReport

logger = get_logger(__name__)


@dataclass
class HealthSummary:
    """Quota reports for the whole pool, bucketed by status."""

    reports: list[tuple[Identity, QuotaReport]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.reports)

    @property
    def exhausted(self) -> int:
        return sum(1 for _, r in self.reports if r.is_exhausted)

    @property
    def warning(self) -> int:
        return sum(1 for _, r in self.reports if r.is_warning and not r.is_exhausted)

    @property
    def ok(self) -> int:
        return self.total - self.exhausted - self.warning


class HealthMonitor:
    """Runs the quota probe for every identity in the pool."""

    def __init__(
        self,
        identities: IdentityPool,
        quota: QuotaMonitor,
        proxies: ProxyBindingManager | None = None,
        *,
        pause: float = 2.0,
        sleep: SleepFn = time.sleep,
    ) -> None:
        self.identities = identities
        self.quota = quota
        self.proxies = proxies
        self.pause = pause
        self._sleep = sleep

    def check_all(self) -> HealthSummary:
        summary = HealthSummary()
        for position, identity in enumerate(self.identities):
            if position:
                self._sleep(self.pause)
            binding = self.proxies.lookup(identity.token) if self.proxies else None
            summary.reports.append((identity, self.quota.check(identity, binding)))

        logger.info(
            "pool_health_checked",
            total=summary.total,
            ok=summary.ok,
            warning=summary.warning,
            exhausted=summary.exhausted,
        )
        return summary
