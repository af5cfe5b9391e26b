"""
Shared helpers.
"""
import logging

from pbac.core import config


_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger, configuring the root handler on first use.

    Usage:
        log = get_logger(__name__)
        log.info("Assigned %s", position.name)
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=config.LOG_LEVEL.upper(), format=_LOG_FORMAT)
    return logging.getLogger(name)
