"""Logging configuration for cdnspeed."""

import logging
import os
import sys

from cdnspeed.config import LOG_LEVEL_ENV


def configure_logging(verbose: bool = False) -> None:
    """Configure application-wide logging.

    Respects the CDNSPEED_LOG_LEVEL environment variable (default:
    WARNING, so the live display stays readable).  ``verbose`` forces
    DEBUG.  Logs go to stderr with timestamp, module name and level.
    """
    if verbose:
        log_level = logging.DEBUG
    else:
        log_level_str = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
        log_level = logging.getLevelName(log_level_str)
        if not isinstance(log_level, int):
            log_level = logging.WARNING

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    logger = logging.getLogger(__name__)
    logger.debug("Logging configured: level=%s", logging.getLevelName(log_level))
