"""structlog configuration for the viewer and its CLI.

Library modules only call ``structlog.get_logger()``; nothing is printed
until the embedding application (or the ``pst-viewer`` CLI) calls
:func:`setup_logging`.  Output always goes to stderr, leaving stdout to
command results such as listings and exported paths.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

from .config import LoggingConfig

# Held at WARNING or above even when the viewer logs at DEBUG.
_QUIET_LOGGERS = ("asyncio",)


def _renderer(json: bool, stream: TextIO) -> structlog.types.Processor:
    if json:
        return structlog.processors.JSONRenderer()
    isatty = getattr(stream, "isatty", None)
    return structlog.dev.ConsoleRenderer(colors=bool(isatty and isatty()))


def setup_logging(*, json: bool = False, level: str = "INFO") -> None:
    """Route structlog through a single stderr handler on the root logger.

    *json* selects JSON lines instead of the console renderer.  *level*
    is a level name and is case-insensitive.  Calling this again replaces
    the previous handler.
    """
    stream = sys.stderr
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json, stream),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))


def configure_from(config: LoggingConfig) -> None:
    """Apply a :class:`LoggingConfig` (level and JSON-lines switch)."""
    setup_logging(json=config.json_lines, level=config.level)
