"""Central logging configuration for the library."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

_DEFAULT_LEVEL = logging.INFO
PACKAGE_LOGGER = "snapshot_renderer"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-level logger with default configuration applied."""
    logger = logging.getLogger(name)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=_DEFAULT_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    return logger


@contextmanager
def debug_logging(enabled: bool) -> Iterator[None]:
    """Temporarily lower the package logger to DEBUG while ``enabled``."""
    if not enabled:
        yield
        return
    logger = logging.getLogger(PACKAGE_LOGGER)
    previous = logger.level
    logger.setLevel(logging.DEBUG)
    try:
        yield
    finally:
        logger.setLevel(previous)
