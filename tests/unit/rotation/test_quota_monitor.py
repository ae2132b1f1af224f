# tests/unit/rotation/test_quota_monitor.py
"""Tests for quota classification and the assume-exhausted policy."""

import httpx
import pytest

from fakes import FakeRemoteService
from fork_orchestrator.config.quota import QuotaSettings
from fork_orchestrator.exceptions import RemoteAPIError, RetryExhaustedError
from fork_orchestrator.remote.base import UsageItem
from fork_orchestrator.rotation.identities import Identity, IdentityPool
from fork_orchestrator.rotation.quota import QuotaMonitor


@pytest.fixture
def monitor(remote: FakeRemoteService) -> QuotaMonitor:
    return QuotaMonitor(remote.factory(), QuotaSettings())


@pytest.mark.unit
class TestEvaluate:
    """Tests for the hours-equivalent formula and thresholds."""

    @pytest.mark.parametrize(
        ("minutes", "multiplier", "hours"),
        [
            (0.0, 2.0, 0.0),
            (1800.0, 2.0, 60.0),
            (3600.0, 2.0, 120.0),
            (90.0, 1.0, 1.5),
            (600.0, 10.0, 100.0),
        ],
    )
    def test_hours_equivalent(
        self, remote: FakeRemoteService, minutes: float, multiplier: float, hours: float
    ) -> None:
        monitor = QuotaMonitor(remote.factory(), QuotaSettings(minutes_multiplier=multiplier))
        report = monitor.evaluate("alice", minutes)

        assert report.hours_equivalent == pytest.approx(minutes * multiplier / 60)
        assert report.hours_equivalent == pytest.approx(hours)

    @pytest.mark.parametrize(
        ("minutes", "warning", "exhausted"),
        [
            (3000.0, False, False),  # 100h
            (3539.0, False, False),  # 117.97h
            (3540.0, True, False),  # 118h, warning boundary
            (3580.0, True, False),  # 119.33h
            (3585.0, True, True),  # 119.5h, critical boundary
            (3600.0, True, True),  # 120h
            (4000.0, True, True),
        ],
    )
    def test_thresholds(
        self, monitor: QuotaMonitor, minutes: float, warning: bool, exhausted: bool
    ) -> None:
        report = monitor.evaluate("alice", minutes)

        assert report.is_warning is warning
        assert report.is_exhausted is exhausted

    def test_remaining_never_negative(self, monitor: QuotaMonitor) -> None:
        assert monitor.evaluate("alice", 1200.0).hours_remaining == pytest.approx(80.0)
        assert monitor.evaluate("alice", 9000.0).hours_remaining == 0.0

    def test_metered_minutes_filters_product_and_unit(self, monitor: QuotaMonitor) -> None:
        items = [
            UsageItem("actions", "Minutes", 100.0),
            UsageItem("actions", "Minutes", 50.5),
            UsageItem("actions", "GigabyteHours", 999.0),
            UsageItem("packages", "Minutes", 999.0),
        ]
        assert monitor.metered_minutes(items) == pytest.approx(150.5)

    def test_invalid_threshold_order_rejected(self) -> None:
        with pytest.raises(ValueError):
            QuotaSettings(warning_threshold=119.5, critical_threshold=118.0)
        with pytest.raises(ValueError):
            QuotaSettings(critical_threshold=121.0, ceiling_hours=120.0)


@pytest.mark.unit
class TestCheck:
    """Tests for QuotaMonitor.check against the remote service."""

    def test_reports_remote_usage(
        self, monitor: QuotaMonitor, remote: FakeRemoteService, identities: IdentityPool
    ) -> None:
        remote.minutes["alice"] = 1500.0

        report = monitor.check(identities.get(0))

        assert report.username == "alice"
        assert report.minutes_used == 1500.0
        assert report.hours_equivalent == pytest.approx(50.0)
        assert report.hours_remaining == pytest.approx(70.0)
        assert report.status == "ok"
        assert report.probe_failed is False
        assert remote.calls_named("get_usage") == [("get_usage", 0, "alice")]

    def test_resolves_placeholder_name_first(
        self, monitor: QuotaMonitor, remote: FakeRemoteService, identities: IdentityPool
    ) -> None:
        remote.minutes["bob"] = 3600.0
        unresolved = identities.get(1).with_name("user_1")

        report = monitor.check(unresolved)

        assert report.username == "bob"
        assert report.is_exhausted
        assert remote.calls_named("get_usage") == [("get_usage", 1, "bob")]

    @pytest.mark.parametrize(
        "error",
        [
            RemoteAPIError("/users/alice/settings/billing/usage", 401, "Bad credentials"),
            RetryExhaustedError("get usage", 3, httpx.ConnectError("refused")),
            httpx.ReadTimeout("timed out"),
            KeyError("usageItems"),
        ],
    )
    def test_probe_failure_assumes_exhausted(
        self,
        monitor: QuotaMonitor,
        remote: FakeRemoteService,
        identities: IdentityPool,
        error: Exception,
    ) -> None:
        """Unknown usage is reported as exhausted regardless of actual usage."""
        remote.minutes["alice"] = 0.0
        remote.usage_errors["alice"] = error

        report = monitor.check(identities.get(0))

        assert report.is_exhausted is True
        assert report.is_warning is True
        assert report.hours_remaining == 0.0
        assert report.hours_equivalent == 999.0
        assert report.probe_failed is True
        assert report.error

    def test_name_lookup_failure_assumes_exhausted(
        self, monitor: QuotaMonitor, remote: FakeRemoteService
    ) -> None:
        identity = Identity(index=5, token="ghp_revokedtoken00", name="user_5")

        report = monitor.check(identity)

        assert report.is_exhausted
        assert report.username == "user_5"
        assert remote.calls_named("get_usage") == []
