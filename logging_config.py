"""
Logging setup for the FYP portal.

Everything logs under the ``fyp_portal`` logger; modules grab a child with
``logging.getLogger("fyp_portal.<area>")``.
"""
import logging
import sys

from config import settings

LOGGER_NAME = "fyp_portal"


def setup_logging() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Clear existing handlers so reloads don't duplicate output
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter("%(levelname)-8s | %(name)s | %(message)s"))
    logger.addHandler(console_handler)
    logger.propagate = False

    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return logger
