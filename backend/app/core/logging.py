from __future__ import annotations

import logging
from logging.config import dictConfig

from backend.app.core import config


def configure_logging(level: str | None = None) -> None:
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": level or config.LOG_LEVEL,
            },
            "loggers": {
                # SQL echo stays off unless asked for explicitly
                "sqlalchemy.engine": {"level": logging.WARNING},
            },
        }
    )
