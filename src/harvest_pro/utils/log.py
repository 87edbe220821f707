"""Logging setup for the standalone scripts."""

import logging
from typing import Optional

from harvest_pro.config import Config

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None):
    """Configure root logging at ``level`` (defaults to Config.LOG_LEVEL)."""
    name = (level or Config.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
    )
