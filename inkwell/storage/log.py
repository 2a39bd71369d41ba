"""Logging configuration using loguru.

The storage core logs through loguru directly.  ``setup_logging`` is for
processes that own their output (the ``inkwell`` CLI); it also routes stdlib
logging (anyio, asyncio) into the same sink.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the caller.
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, sink: Any = sys.stderr) -> None:
    """Make ``sink`` the only loguru destination, at ``level``.

    Raises ``ValueError`` for a level name loguru does not know, before any
    sink is touched.  Library callers embedding the storage core may skip
    this and keep their own sinks.
    """
    level = level.upper()
    logger.level(level)

    logger.remove()
    logger.add(sink, level=level, format=LOG_FORMAT)
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
