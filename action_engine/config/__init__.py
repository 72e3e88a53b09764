"""Configuration management."""

from action_engine.config.logging import configure_logging
from action_engine.config.settings import (
    Environment,
    Settings,
    UnhandledErrorPolicy,
    get_settings,
)

__all__ = [
    "Environment",
    "Settings",
    "UnhandledErrorPolicy",
    "configure_logging",
    "get_settings",
]
