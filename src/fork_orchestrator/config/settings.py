"""Settings configuration for the fork orchestrator."""

import os
import tomllib
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fork_orchestrator.config.discovery import find_toml_config_file
from fork_orchestrator.exceptions import ConfigurationError

from .alerts import AlertSettings
from .paths import PathSettings
from .quota import QuotaSettings
from .remote import ForkSettings, ProxySettings, RetrySettings


__all__ = [
    "LoggingSettings",
    "Settings",
    "get_settings",
]

logger = structlog.get_logger(__name__)

CONFIG_FILE_ENV = "FORK_ORCHESTRATOR_CONFIG_FILE"

LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


class LoggingSettings(BaseModel):
    """Log output configuration."""

    level: str = Field(default="INFO", description="Minimum log level")
    json_logs: bool = Field(default=False, description="Emit JSON lines")

    @field_validator("level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in LOG_LEVELS:
            raise ValueError(
                "logging level must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized


class Settings(BaseSettings):
    """
    Configuration settings for the fork orchestrator.

    Settings are loaded from environment variables, .env files, and TOML configuration files.
    Values read from the TOML file and explicit overrides are passed to the
    constructor and therefore take precedence over environment variables.
    TOML configuration files are discovered in the following order:
    1. .fork_orchestrator.toml in current directory
    2. fork_orchestrator.toml in current directory
    3. config.toml in user config directory/fork_orchestrator/ (platform-specific)
    """

    model_config = SettingsConfigDict(
        env_prefix="FORK_ORCHESTRATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    paths: PathSettings = Field(
        default_factory=PathSettings,
        description="File-system layout",
    )

    quota: QuotaSettings = Field(
        default_factory=QuotaSettings,
        description="Quota thresholds and usage weighting",
    )

    retry: RetrySettings = Field(
        default_factory=RetrySettings,
        description="Backoff policy for remote calls",
    )

    forks: ForkSettings = Field(
        default_factory=ForkSettings,
        description="Fork lifecycle timings",
    )

    proxy: ProxySettings = Field(
        default_factory=ProxySettings,
        description="Proxy probe configuration",
    )

    alerts: AlertSettings = Field(
        default_factory=AlertSettings,
        description="Alert delivery",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Log output",
    )

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Args:
            toml_path: Path to the TOML configuration file

        Returns:
            dict: Configuration data from the TOML file

        Raises:
            ValueError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ValueError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. Can be:
                - None: Use FORK_ORCHESTRATOR_CONFIG_FILE or auto-discover
                - Path or str: Use this specific config file
            **kwargs: Section overrides, merged over the file contents

        Returns:
            Settings: Configured Settings instance
        """
        if config_path is None:
            config_path_env = os.environ.get(CONFIG_FILE_ENV)
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path and config_path.exists():
            config_data = cls.load_toml_config(config_path)
            logger.debug("config_file_loaded", path=str(config_path))

        merged = dict(config_data)
        for section, values in kwargs.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section] = {**merged[section], **values}
            else:
                merged[section] = values

        return cls(**merged)


def get_settings(config_path: Path | str | None = None, **overrides: Any) -> Settings:
    """Resolve settings at the command boundary.

    Args:
        config_path: Optional path to a TOML configuration file
        **overrides: Section overrides (e.g. ``paths={"config_dir": "..."}``)

    Returns:
        Settings: Configured Settings instance

    Raises:
        ConfigurationError: If the file cannot be read or values are invalid
    """
    try:
        return Settings.from_config(config_path=config_path, **overrides)
    except (OSError, ValueError) as e:
        # pydantic.ValidationError is a ValueError
        raise ConfigurationError(f"Configuration error: {e}") from e
