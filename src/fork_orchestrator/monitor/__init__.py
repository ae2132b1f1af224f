"""Alerts and pool-wide health reporting."""

from fork_orchestrator.monitor.alerts import AlertManager
from fork_orchestrator.monitor.health import HealthMonitor, HealthSummary


__all__ = [
    "AlertManager",
    "HealthMonitor",
    "HealthSummary",
]
