"""One log pipeline for mailroom events and for uvicorn's own records.

mailroom code logs through structlog; uvicorn and imaplib log through
the stdlib.  Both end up in a single stdout handler whose formatter runs
the same processor chain, so every line has the same shape.
"""

from __future__ import annotations

import logging
import sys

import structlog

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _processor_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _stdout_handler(json: bool) -> logging.Handler:
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_processor_chain(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    return handler


def setup_logging(*, json: bool = True, level: str = "INFO") -> None:
    """Install the mailroom log pipeline on the root logger.

    *json* picks JSON lines (production) or the coloured console renderer.
    *level* is a stdlib level name in any case.  Calling this again
    replaces the previous handler instead of stacking a second one.
    """
    structlog.configure(
        processors=[*_processor_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [_stdout_handler(json)]
    root.setLevel(level.upper())

    # uvicorn ships its own handlers; hand its records to the root instead.
    for name in _UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
