"""Configuration module for the fork orchestrator."""

from .alerts import AlertSettings
from .paths import PathSettings
from .quota import QuotaSettings
from .remote import ForkSettings, ProxySettings, RetrySettings
from .settings import LoggingSettings, Settings, get_settings


__all__ = [
    "AlertSettings",
    "ForkSettings",
    "LoggingSettings",
    "PathSettings",
    "ProxySettings",
    "QuotaSettings",
    "RetrySettings",
    "Settings",
    "get_settings",
]
