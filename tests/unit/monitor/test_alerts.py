# tests/unit/monitor/test_alerts.py
"""Tests for Telegram and Discord alert delivery."""

import json

import httpx
import pytest

from fork_orchestrator.config.alerts import AlertSettings
from fork_orchestrator.monitor.alerts import AlertManager


BOT_TOKEN = "123456:secret-bot-token"
WEBHOOK = "https://discord.example/api/webhooks/1/abc"


class Capture:
    def __init__(self, status: int = 200, error: Exception | None = None) -> None:
        self.status = status
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, json={"ok": self.status < 400})


def settings(**overrides: object) -> AlertSettings:
    values: dict[str, object] = {
        "enabled": True,
        "telegram_bot_token": BOT_TOKEN,
        "telegram_chat_id": "-100200",
        "discord_webhook": WEBHOOK,
    }
    values.update(overrides)
    return AlertSettings(**values)


@pytest.mark.unit
class TestAlertManager:
    """Tests for AlertManager.send."""

    def test_sends_to_both_channels(self) -> None:
        capture = Capture()
        manager = AlertManager(settings(), transport=httpx.MockTransport(capture))

        assert manager.send("quota exhausted") == 2

        telegram, discord = capture.requests
        assert telegram.url.path == f"/bot{BOT_TOKEN}/sendMessage"
        assert json.loads(telegram.content) == {
            "chat_id": "-100200",
            "text": "quota exhausted",
            "parse_mode": "Markdown",
        }
        assert str(discord.url) == WEBHOOK
        assert json.loads(discord.content) == {"content": "quota exhausted"}

    def test_disabled_sends_nothing(self) -> None:
        capture = Capture()
        manager = AlertManager(settings(enabled=False), transport=httpx.MockTransport(capture))

        assert manager.enabled is False
        assert manager.send("hello") == 0
        assert capture.requests == []

    def test_enabled_without_channels_is_disabled(self) -> None:
        manager = AlertManager(
            settings(telegram_bot_token=None, discord_webhook=None),
        )
        assert manager.enabled is False
        assert manager.send("hello") == 0

    def test_telegram_needs_chat_id(self) -> None:
        capture = Capture()
        manager = AlertManager(
            settings(telegram_chat_id=None), transport=httpx.MockTransport(capture)
        )

        assert manager.send("hello") == 1
        assert [str(r.url) for r in capture.requests] == [WEBHOOK]

    @pytest.mark.parametrize(
        "capture",
        [Capture(status=500), Capture(error=httpx.ConnectError("unreachable"))],
    )
    def test_delivery_failure_is_swallowed(self, capture: Capture) -> None:
        manager = AlertManager(settings(), transport=httpx.MockTransport(capture))

        assert manager.send("hello") == 0
        assert len(capture.requests) == 2

    def test_rotation_message(self) -> None:
        capture = Capture()
        manager = AlertManager(
            settings(telegram_bot_token=None), transport=httpx.MockTransport(capture)
        )

        manager.rotation("alice/project", "alice", 1, probe_failed=True)

        text = json.loads(capture.requests[0].content)["content"]
        assert "alice/project" in text
        assert "usage probe failed" in text
        assert "next identity index 1" in text
