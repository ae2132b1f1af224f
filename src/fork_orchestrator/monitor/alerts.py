"""Optional Telegram and Discord notifications.

Delivery is best effort: failures are logged and never raised, so an
unreachable chat service cannot block rotation.
"""

import httpx
from structlog import get_logger

from fork_orchestrator.config.alerts import AlertSettings


logger = get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class AlertManager:
    """Sends plain-text alerts to the configured channels."""

    def __init__(
        self,
        settings: AlertSettings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or AlertSettings()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.enabled and (
            self.settings.telegram_configured or bool(self.settings.discord_webhook)
        )

    def send(self, message: str) -> int:
        """Send a message to every configured channel.

        Returns:
            Number of channels that accepted the message
        """
        if not self.enabled:
            logger.debug("alerts_disabled")
            return 0

        delivered = 0
        with httpx.Client(timeout=self.settings.timeout, transport=self._transport) as client:
            if self.settings.telegram_configured:
                url = f"{TELEGRAM_API_URL}/bot{self.settings.telegram_bot_token}/sendMessage"
                payload = {
                    "chat_id": self.settings.telegram_chat_id,
                    "text": message,
                    "parse_mode": "Markdown",
                }
                delivered += self._post(client, "telegram", url, payload)

            if self.settings.discord_webhook:
                delivered += self._post(
                    client, "discord", self.settings.discord_webhook, {"content": message}
                )

        return delivered

    def _post(
        self, client: httpx.Client, channel: str, url: str, payload: dict[str, str | None]
    ) -> int:
        try:
            response = client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # The message would carry the URL, and with it the bot token
            logger.warning(
                "alert_delivery_failed", channel=channel, status=e.response.status_code
            )
            return 0
        except httpx.HTTPError as e:
            logger.warning("alert_delivery_failed", channel=channel, error=type(e).__name__)
            return 0

        logger.info("alert_sent", channel=channel)
        return 1

    def rotation(self, repo: str, username: str, next_index: int, probe_failed: bool) -> int:
        reason = "usage probe failed" if probe_failed else "quota exhausted"
        return self.send(
            f"Rotation: {repo} (@{username}) marked exhausted ({reason}); "
            f"next identity index {next_index}"
        )

    def failure(self, operation: str, error: Exception) -> int:
        return self.send(f"Failure during {operation}: {error}")
