"""Application configuration helpers."""

from __future__ import annotations

from .context import ContextConfig, get_context_config
from .errors import ConfigurationError, InvalidConfigurationError
from .logging import configure_logging
from .watch import WatchConfig, get_watch_config

__all__ = [
    "ConfigurationError",
    "ContextConfig",
    "InvalidConfigurationError",
    "WatchConfig",
    "configure_logging",
    "get_context_config",
    "get_watch_config",
]
