"""
utils/logger.py
---------------
Logging setup shared by every shopdb module.

Each request runs on its own worker thread, so the thread name is part of
every line; storage and transaction messages also carry the request id.
Use `get_logger(__name__)` everywhere.
"""

import logging
import sys

from config import LOG_LEVEL

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_configured = False


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    root = logging.getLogger()
    root.setLevel(_resolve_level(LOG_LEVEL))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Return the logger for a shopdb module, configuring output on first use.

    Args:
        name: Usually ``__name__`` of the calling module.
    """
    _configure_root()
    return logging.getLogger(name)
