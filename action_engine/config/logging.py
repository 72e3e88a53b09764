"""Logging setup for applications embedding the engine."""

import logging
from typing import Optional

from action_engine.config.settings import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure root logging from settings.
    
    Debug mode forces DEBUG level so every state transition is traced,
    except in production where the configured log level always applies.
    """
    settings = settings or get_settings()
    if settings.debug and not settings.is_production:
        level = logging.DEBUG
    else:
        level = getattr(logging, settings.log_level.upper())
    
    logging.basicConfig(level=level, format=LOG_FORMAT)
    engine_logger = logging.getLogger("action_engine")
    engine_logger.setLevel(level)
    engine_logger.info(
        f"Action engine logging configured - Environment: {settings.environment.value}, "
        f"level: {logging.getLevelName(level)}"
    )
