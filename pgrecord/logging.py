"""
Logging configuration for the pgrecord package.

Sets up the default handler and format for the ``pgrecord`` logger and installs
an exception hook that logs uncaught exceptions.

The log level can be configured via the PGRECORD_LOG_LEVEL environment variable.
"""

from __future__ import annotations

import logging
import os
import sys
from types import TracebackType

logger = logging.getLogger(__name__.split(".")[0])

log_level = os.getenv("PGRECORD_LOG_LEVEL", "info").upper()

log_format = logging.Formatter("[%(asctime)s][%(levelname)s]: %(message)s")

stream_handler = logging.StreamHandler()  # default handler
stream_handler.setFormatter(log_format)

logger.setLevel(level=log_level)
logger.handlers = [stream_handler]


def excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    """
    Log uncaught exceptions through the package logger.

    Keyboard interrupts go to the default handler.
    """
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger.error("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))


sys.excepthook = excepthook
