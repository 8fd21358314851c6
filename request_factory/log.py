"""Logging for request-factory.

Modules log through children of the "request_factory" logger. A stderr
handler is attached lazily the first time a logger is requested, and only
when the application has not already configured that logger itself.

The handler level comes from REQUEST_FACTORY_LOG_LEVEL (default INFO), so
the per-request DEBUG records of the connection layer can be switched on
without code changes. Records carry the thread name because one factory
is typically shared by many worker threads.
"""

from __future__ import annotations

import logging
import os
import sys

PACKAGE_LOGGER_NAME = "request_factory"
LOG_LEVEL_ENV_VAR = "REQUEST_FACTORY_LOG_LEVEL"
LOG_FORMAT = "%(levelname)s [%(name)s] [%(threadName)s] %(message)s"

_configured = False


def level_from_env() -> int:
    """Level named by REQUEST_FACTORY_LOG_LEVEL, or INFO if unset or unknown."""
    name = os.getenv(LOG_LEVEL_ENV_VAR, "INFO").strip().upper()
    level = logging.getLevelName(name)
    # getLevelName returns the string "Level X" for names it does not know
    return level if isinstance(level, int) else logging.INFO


def get_logger(module_name: str) -> logging.Logger:
    """Return the logger "request_factory.<module_name>".

    Args:
        module_name: Short module name, e.g. "connection".
    """
    global _configured

    if not _configured:
        package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
        if not package_logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            package_logger.addHandler(handler)
            package_logger.setLevel(level_from_env())
            package_logger.propagate = False
        _configured = True

    return logging.getLogger(f"{PACKAGE_LOGGER_NAME}.{module_name}")
