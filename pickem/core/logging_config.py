"""
Logging configuration for the pick'em engine
"""

import logging

from pickem.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """
    Install a single console handler on the ``pickem`` logger.

    Safe to call more than once; existing handlers are replaced so reloads
    don't duplicate output.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logger = logging.getLogger("pickem")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if settings.debug else level)
    logger.propagate = False
