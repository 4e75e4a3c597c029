import logging
import logging.config
from typing import Any

from .settings import get_settings


def setup_logging(level: str | None = None) -> dict[str, Any]:
    """Configure console logging for the progress engine.

    ``level`` overrides LOG_LEVEL; DEBUG=true forces debug output for the
    engine's own loggers only.
    """
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    engine_level = "DEBUG" if settings.DEBUG else level
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": "DEBUG",
            },
        },
        "loggers": {
            "progress_sync": {"level": engine_level},
            # httpx logs every request at INFO
            "httpx": {"level": "WARNING"},
        },
        "root": {"level": level, "handlers": ["console"]},
    }

    logging.config.dictConfig(config)
    return config
