"""Logging configuration for the demo process."""

from __future__ import annotations

import logging
from typing import Optional

from .settings import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger; `level` overrides LOG_LEVEL."""

    name = (level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
    # httpx logs every request line at INFO, which is noise next to our own records.
    logging.getLogger("httpx").setLevel(logging.WARNING)
