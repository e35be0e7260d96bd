"""Logging setup shared by the API entrypoint and tests.

Modules log through `logging.getLogger(__name__)`; `configure_logging` attaches
a single console handler to the package logger.
"""

from __future__ import annotations

import logging
import os
import sys

_PACKAGE_LOGGER = "prompt_prep"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int | str | None = None) -> logging.Logger:
    """Configure the package logger once and return it.

    The level defaults to `PROMPT_PREP_LOG_LEVEL` (or INFO). Calling this again
    only updates the level; no duplicate handlers are added.
    """

    resolved = level if level is not None else os.getenv("PROMPT_PREP_LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(resolved)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    return logger
