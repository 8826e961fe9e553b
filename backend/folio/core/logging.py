"""
Logging setup shared by the API process, Celery workers and scripts.
"""

import logging
import sys
from typing import Optional

from folio.core.config import settings

# Chatty libraries and the level they are held to
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "celery": logging.INFO,
    "redis": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "yfinance": logging.WARNING,
    "peewee": logging.WARNING,
}


def setup_logging(level: Optional[str] = None) -> None:
    """Send plain-text records to stdout at ``LOG_LEVEL`` (or ``level``)."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

    for name, logger_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(logger_level)
