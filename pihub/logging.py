"""pihub — Structured logging configuration.

Every record carries a timestamp, level and logger name.  Records emitted
while an HTTP request is being served also carry the request's context
(``request_id``, and ``module``/``action`` once the route knows them), bound
through :mod:`structlog.contextvars`.  ``asyncio.to_thread`` copies the
context, so driver code running in worker threads logs with it too.

The console follows ``logging.format``; a log file is always written as JSON
lines so it can be shipped and grepped.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from pihub.exceptions import PiHubError

REQUEST_KEYS = ("request_id", "module", "action")

# uvicorn.access duplicates AccessLogMiddleware.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


def _request_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(REQUEST_KEYS)
    if unknown:
        raise TypeError(f"Unknown request context keys: {sorted(unknown)}")
    return {k: v for k, v in fields.items() if v is not None}


def bind_request_context(**fields: Any) -> None:
    """Bind request fields to the current task or thread.  ``None`` is skipped."""
    structlog.contextvars.bind_contextvars(**_request_fields(fields))


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(*REQUEST_KEYS)


@contextmanager
def request_context(**fields: Any) -> Iterator[None]:
    """Bind request fields for the duration of the block, then restore."""
    with structlog.contextvars.bound_contextvars(**_request_fields(fields)):
        yield


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def _flatten_hub_error(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Render an ``error=<PiHubError>`` field as message, type and context."""
    error = event_dict.get("error")
    if isinstance(error, PiHubError):
        event_dict["error"] = error.message
        event_dict.setdefault("error_type", type(error).__name__)
        if error.context:
            event_dict.setdefault("error_context", error.context)
    elif isinstance(error, BaseException):
        event_dict["error"] = str(error)
        event_dict.setdefault("error_type", type(error).__name__)
    return event_dict


def _drop_color_message(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Remove uvicorn's ``color_message`` duplicate field."""
    event_dict.pop("color_message", None)
    return event_dict


def _formatter(as_json: bool, pre_chain: list[Processor]) -> logging.Formatter:
    processors: list[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if as_json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return structlog.stdlib.ProcessorFormatter(foreign_pre_chain=pre_chain, processors=processors)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Called by :func:`~pihub.api.server.create_app`; calling it again replaces
    the previous handlers.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` or ``"json"`` for the stdout handler.
        log_file: Optional path that additionally receives JSON lines.
    """
    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _flatten_hub_error,
        _drop_color_message,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(_formatter(format == "json", pre_chain))
    handlers: list[logging.Handler] = [stream_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(_formatter(True, pre_chain))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*."""
    return structlog.get_logger(name)
