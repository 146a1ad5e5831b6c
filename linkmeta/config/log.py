# linkmeta/config/log.py
# Responsibility: Configures process-wide logging for the service.

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level_name: str = "INFO") -> None:
    """
    Attaches a single stream handler to the package logger.
    Calling it again only updates the level.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    logger = logging.getLogger("linkmeta")
    logger.setLevel(level)

    if any(getattr(h, "_linkmeta_handler", False) for h in logger.handlers):
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._linkmeta_handler = True
    logger.addHandler(handler)
