"""Alert delivery configuration."""

from pydantic import BaseModel, Field


class AlertSettings(BaseModel):
    """Optional Telegram and Discord notifications."""

    enabled: bool = Field(default=False, description="Send alerts at all")
    telegram_bot_token: str | None = Field(
        default=None, description="Telegram bot token"
    )
    telegram_chat_id: str | None = Field(
        default=None, description="Telegram chat receiving alerts"
    )
    discord_webhook: str | None = Field(
        default=None, description="Discord webhook URL"
    )
    timeout: float = Field(default=10.0, gt=0, description="Delivery timeout in seconds")

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)
