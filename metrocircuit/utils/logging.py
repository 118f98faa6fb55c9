"""Structured logging setup using structlog.

structlog events and standard-library records (uvicorn, httpx, aiosqlite)
share one processor chain and one handler.  The handler writes to stderr so
the CLI can print answers and ``--json`` payloads on stdout without log
lines mixed in.

Rendering follows ``APP_ENV``: ``production`` (or ``json_output=True``)
emits one JSON object per line tagged ``service="metrocircuit"`` for the log
shipper; anything else uses the console renderer, coloured only on a TTY.
"""

import logging
import os
import sys
from typing import Any, TextIO

import structlog

SERVICE_NAME = "metrocircuit"

# Chatty at INFO: one line per HTTP request, SQL statement or image decode.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite", "PIL")


def _add_service(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output regardless of ``APP_ENV``.
        stream: Destination for every log line; defaults to ``sys.stderr``.

    Returns:
        A configured structlog BoundLogger.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    stream = stream if stream is not None else sys.stderr
    level = logging.getLevelName(log_level.upper())

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        shared_processors.append(_add_service)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    # structlog hands its event dict to the stdlib handler, which renders both sources.
    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger bound with ``logger_name``; configures defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
