"""Structured logging configuration for aiya.

Security decisions, confirmations and executions are logged as key-value
events through structlog, either as console output or as JSON lines.
Events carry the ``session_id`` of the shell session that produced them,
and command text and captured output are clipped so a chatty command
cannot flood the log.
"""

import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from aiya.constants import OUTPUT_SNIPPET_LENGTH, truncate

if TYPE_CHECKING:
    from aiya.config import AiyaSettings

# Event keys that may hold arbitrary command text or process output
CLIPPED_KEYS = ("command", "stdout", "stderr", "output")


def clip_long_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Truncate command and output fields to a snippet."""
    for key in CLIPPED_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = truncate(value, OUTPUT_SNIPPET_LENGTH)
    return event_dict


def configure_logging(settings: "AiyaSettings | None" = None) -> None:
    """Configure structured logging based on settings.

    Args:
        settings: Application settings. If None, warnings and above are
            rendered to the console.
    """
    log_level = logging.WARNING
    log_format = "console"

    if settings is not None:
        log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
        log_format = settings.log_format

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        clip_long_values,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        renderer: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=[*shared_processors, *renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Subprocess helpers and pydantic log through the standard library
    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name) if name else structlog.get_logger()


@contextmanager
def session_context(session_id: str, **extra: Any) -> Iterator[None]:
    """Bind ``session_id`` to every log call made inside the block.

    Example:
        with session_context(client.session_id, tool="ExecuteCommand"):
            logger.info("command_filtered")  # includes session_id and tool
    """
    keys = {"session_id": session_id, **extra}
    with structlog.contextvars.bound_contextvars(**keys):
        yield


class Loggers:
    """Pre-configured logger instances for aiya components."""

    @staticmethod
    def config() -> structlog.stdlib.BoundLogger:
        """Logger for settings and shell policy loading."""
        return get_logger("aiya.config")

    @staticmethod
    def shell() -> structlog.stdlib.BoundLogger:
        """Logger for the shell tool client and execution engine."""
        return get_logger("aiya.shell")

    @staticmethod
    def security() -> structlog.stdlib.BoundLogger:
        """Logger for filtering, boundary and confirmation decisions."""
        return get_logger("aiya.security")

    @staticmethod
    def audit() -> structlog.stdlib.BoundLogger:
        """Logger for audit records."""
        return get_logger("aiya.audit")
