"""Process-level logging bootstrap for hosts embedding the scheduler."""

import logging

from hearth.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Apply the standard log format at *level* (defaults to ``LOG_LEVEL``)."""
    name = (level or settings.log_level).upper()
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, name, logging.INFO),
    )
