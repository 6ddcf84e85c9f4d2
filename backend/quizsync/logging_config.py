import logging
import os
from logging.config import dictConfig
from typing import Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_TRUTHY = {"1", "true", "yes"}


def configure_logging(level: Optional[str] = None) -> None:
    """Route quizsync, uvicorn and SQLAlchemy logs through one stream handler.

    ``QUIZSYNC_LOG_LEVEL`` sets the package level; ``QUIZSYNC_DEBUG_HTTP=1`` turns on
    httpx request logs and ``QUIZSYNC_DEBUG_SQL=1`` turns on engine statements.
    """
    package_level = (level or os.getenv("QUIZSYNC_LOG_LEVEL", "INFO")).upper()
    debug_http = os.getenv("QUIZSYNC_DEBUG_HTTP", "0").lower() in _TRUTHY
    debug_sql = os.getenv("QUIZSYNC_DEBUG_SQL", "0").lower() in _TRUTHY

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": DEFAULT_LOG_FORMAT}},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "quizsync": {"level": package_level},
                "httpx": {"level": "DEBUG" if debug_http else "WARNING"},
                "sqlalchemy.engine": {"level": "INFO" if debug_sql else "WARNING"},
            },
            "root": {
                "handlers": ["default"],
                "level": "INFO",
            },
        }
    )

    if debug_http:
        logging.getLogger("uvicorn.access").setLevel(logging.DEBUG)
