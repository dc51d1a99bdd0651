"""Process-wide logging setup driven by LOG_LEVEL."""

from __future__ import annotations

import logging
import sys

from app.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
ROOT_LOGGER_NAME = "conversync"


class LoggingConfig:
    """Configure root logging once; later instantiations only adjust the level."""

    _configured = False

    def __init__(self, level: str | None = None) -> None:
        level_name = (level or get_settings().log_level or "INFO").upper()
        numeric = getattr(logging, level_name, logging.INFO)
        if not LoggingConfig._configured:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root = logging.getLogger()
            root.addHandler(handler)
            LoggingConfig._configured = True
        logging.getLogger().setLevel(numeric)
        # Quiet chatty libraries unless we are debugging
        if numeric > logging.DEBUG:
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
            logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under the application logger."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
