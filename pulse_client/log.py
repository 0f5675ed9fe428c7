"""Logging configuration."""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

APP_LOGGER = "pulse_client"


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    level_upper = level.upper()
    invalid_level = None
    if level_upper not in VALID_LEVELS:
        invalid_level = level
        level_upper = "INFO"

    # Root at WARNING keeps websockets chatter out; stderr keeps stdout for readings
    logging.basicConfig(
        level=logging.WARNING,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=True,
    )

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(getattr(logging, level_upper))

    if invalid_level:
        app_logger.warning("Unknown log level '%s', defaulting to INFO", invalid_level)
