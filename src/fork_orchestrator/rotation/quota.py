"""Quota monitor: probes metered usage for one identity.

Consumed minutes are weighted by the runner multiplier and expressed in
hours-equivalent::

    hours_equivalent = minutes * multiplier / 60

When the probe fails for any reason the monitor returns an assume-exhausted
report instead of raising, so rotation moves away from an identity whose
usage is unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
from structlog import get_logger

from fork_orchestrator.config.quota import QuotaSettings
from fork_orchestrator.exceptions import OrchestratorError
from fork_orchestrator.rotation.constants import ASSUMED_EXHAUSTED_USAGE


if TYPE_CHECKING:
    from fork_orchestrator.remote.base import ClientFactory, UsageItem
    from fork_orchestrator.rotation.identities import Identity
    from fork_orchestrator.rotation.proxies import ProxyBinding

logger = get_logger(__name__)


@dataclass(frozen=True)
class QuotaReport:
    """Normalized usage of one identity against the configured thresholds."""

    username: str
    minutes_used: float
    hours_equivalent: float
    hours_remaining: float
    included_minutes: float
    is_warning: bool
    is_exhausted: bool
    probe_failed: bool = False
    error: str | None = None

    @property
    def status(self) -> str:
        if self.is_exhausted:
            return "exhausted"
        if self.is_warning:
            return "warning"
        return "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "minutes_used": self.minutes_used,
            "hours_equivalent": self.hours_equivalent,
            "hours_remaining": self.hours_remaining,
            "included_minutes": self.included_minutes,
            "is_warning": self.is_warning,
            "is_exhausted": self.is_exhausted,
            "probe_failed": self.probe_failed,
            "error": self.error,
        }


class QuotaMonitor:
    """Classifies an identity's usage against warning and critical thresholds."""

    def __init__(
        self, client_factory: ClientFactory, settings: QuotaSettings | None = None
    ) -> None:
        """Initialize the monitor.

        Args:
            client_factory: Builds a remote client for an identity and binding
            settings: Thresholds and usage weighting
        """
        self._client_factory = client_factory
        self.settings = settings or QuotaSettings()

    def evaluate(self, username: str, minutes_used: float) -> QuotaReport:
        """Build a report from consumed minutes."""
        hours = minutes_used * self.settings.minutes_multiplier / 60.0
        return QuotaReport(
            username=username,
            minutes_used=minutes_used,
            hours_equivalent=hours,
            hours_remaining=max(self.settings.ceiling_hours - hours, 0.0),
            included_minutes=self.settings.included_minutes,
            is_warning=hours >= self.settings.warning_threshold,
            is_exhausted=hours >= self.settings.critical_threshold,
        )

    def assume_exhausted(self, username: str, error: str) -> QuotaReport:
        """Conservative report used when usage cannot be determined."""
        return QuotaReport(
            username=username,
            minutes_used=ASSUMED_EXHAUSTED_USAGE,
            hours_equivalent=ASSUMED_EXHAUSTED_USAGE,
            hours_remaining=0.0,
            included_minutes=self.settings.included_minutes,
            is_warning=True,
            is_exhausted=True,
            probe_failed=True,
            error=error,
        )

    def metered_minutes(self, items: list[UsageItem]) -> float:
        """Sum the quantities of the metered product and unit."""
        return sum(
            item.quantity
            for item in items
            if item.product == self.settings.product
            and item.unit_type == self.settings.unit_type
        )

    def check(self, identity: Identity, binding: ProxyBinding | None = None) -> QuotaReport:
        """Probe usage for an identity; never raises for probe failures."""
        username = identity.name
        try:
            with self._client_factory(identity, binding) as client:
                if not identity.is_resolved:
                    username = client.get_username()
                items = client.get_usage(username)
        except (OrchestratorError, httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "quota_probe_failed",
                identity_index=identity.index,
                username=username,
                token_prefix=identity.token_prefix,
                error=str(e),
            )
            return self.assume_exhausted(username, str(e))

        report = self.evaluate(username, self.metered_minutes(items))
        logger.info(
            "quota_checked",
            identity_index=identity.index,
            username=username,
            hours_equivalent=round(report.hours_equivalent, 2),
            hours_remaining=round(report.hours_remaining, 2),
            status=report.status,
        )
        return report
