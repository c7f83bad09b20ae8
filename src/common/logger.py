"""
Logging setup for the signage player.
Every service module obtains its logger through setup_logger(__name__).
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Level used when neither the caller nor the environment sets one
DEFAULT_LEVEL = "INFO"

_root_configured = False


def _resolve_level(level: Optional[str]) -> int:
    """Convert a level name to a logging constant, falling back to INFO."""
    name = level or os.environ.get("SIGNAGE_LOG_LEVEL", DEFAULT_LEVEL)
    return getattr(logging, str(name).upper(), logging.INFO)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure the shared "src" logger hierarchy.

    Installs a single stdout handler. Calling again only updates the level,
    so repeated calls never duplicate output.

    Args:
        level: Level name (DEBUG, INFO, ...). Uses SIGNAGE_LOG_LEVEL or INFO if None
    """
    global _root_configured

    package_logger = logging.getLogger("src")
    package_logger.setLevel(_resolve_level(level))

    if _root_configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    package_logger.addHandler(handler)
    _root_configured = True


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a module logger under the configured hierarchy.

    Args:
        name: Logger name, normally __name__
        level: Optional level override for this logger only

    Returns:
        Logger instance
    """
    configure_logging()

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(_resolve_level(level))
    return logger
