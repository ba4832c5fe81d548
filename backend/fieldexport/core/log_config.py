"""Logging setup for the export service."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the process.

    Repeated calls only adjust the level, so creating several apps in one
    process (as the tests do) does not stack handlers.

    Args:
        level: Log level name such as "DEBUG" or "INFO".
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level.upper())
