"""Structured logging for casket.

Built on structlog with stdlib logging as the sink, so library users keep
control of handlers. Events are short snake_case names with key/value context:

    logger.info("ticket_issued", ticket_type="write", token_fp="3fa4...")

Bearer token ids are secrets. Log a fingerprint prefix, never the id.
"""

import logging
import sys
from typing import Any

import structlog

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def configure_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Configure structlog and the stdlib root handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_output: Render JSON lines instead of the console format
    """
    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level.upper(),
        force=True,
    )

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Get a structlog logger bound to ``name``."""
    if name is not None:
        initial_values.setdefault("component", name)
    return structlog.get_logger(**initial_values)
