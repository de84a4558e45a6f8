"""Configuration management for the listing alert engine."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import build_app_config, load_config
from .models import (
    AppConfig,
    DeliveryConfig,
    EmailChannelConfig,
    EngineConfig,
    ListingFeedConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    OverflowPolicy,
    RescanConfig,
    StorageRetryConfig,
    WebhookChannelConfig,
)

__all__ = [
    "load_config",
    "build_app_config",
    "load_environment_config",
    "AppConfig",
    "ListingFeedConfig",
    "EngineConfig",
    "StorageRetryConfig",
    "RescanConfig",
    "DeliveryConfig",
    "EmailChannelConfig",
    "WebhookChannelConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "OverflowPolicy",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
