"""
Logging setup for the data privacy registry.

Modules log through ``logging.getLogger(__name__)``; this only wires the
root handler and level from settings.
"""

import logging
from typing import Optional

from dataprivacy.core.config import settings


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure the root logger from settings (explicit args win)"""
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=fmt or settings.LOG_FORMAT)
    # basicConfig is a no-op once handlers exist
    logging.getLogger().setLevel(log_level)

    if settings.DATABASE_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
