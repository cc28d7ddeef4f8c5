"""Process-wide logging setup shared by the API and the realtime gateway."""

from __future__ import annotations

import logging
import logging.config
import sys

from artchat.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggingConfig:
    """Configure the root and artchat loggers once per process."""

    _configured = False

    def __init__(self, level: str | None = None) -> None:
        if LoggingConfig._configured:
            return
        level = (level or get_settings().log_level or "INFO").upper()
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {"default": {"format": LOG_FORMAT}},
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "formatter": "default",
                        "stream": sys.stdout,
                    }
                },
                "loggers": {
                    "artchat": {
                        "handlers": ["console"],
                        "level": level,
                        "propagate": False,
                    },
                    "uvicorn.error": {"level": level},
                },
                "root": {"handlers": ["console"], "level": "WARNING"},
            }
        )
        LoggingConfig._configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``artchat``."""
    if name.startswith("artchat"):
        return logging.getLogger(name)
    return logging.getLogger(f"artchat.{name}")
