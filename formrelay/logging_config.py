from __future__ import annotations

import logging.config
from typing import Optional

from formrelay.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install one stream handler for the app and uvicorn loggers.

    Must run before uvicorn.run() so workers inherit it.
    """
    level = (level or get_settings().log_level).upper()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "formrelay": {"level": level},
                "uvicorn": {"level": level},
                "uvicorn.access": {"level": level},
                "aiosmtplib": {"level": "WARNING"},
            },
            "root": {"level": level, "handlers": ["console"]},
        }
    )
