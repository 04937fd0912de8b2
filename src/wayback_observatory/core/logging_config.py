"""Structured logging for the Wayback tools.

``configure_logging()`` is called once by the application factory.  Library
modules keep using the stdlib logging API with a short subsystem prefix::

    logger = logging.getLogger(__name__)
    logger.info("wayback: cache miss for %s", key)

while the HTTP layer logs structlog events with bound context (``tool``,
``method``, ``path``).  Both end up in the same renderer, and every record
carries:

``component``
    The module path below ``wayback_observatory`` (``"wayback.cdx"``,
    ``"core.rate_limiter"``), so upstream traffic, cache activity and
    throttling can be filtered apart.
``request_id``
    The ID assigned by the request-logging middleware, when a request is
    being served.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

PACKAGE_LOGGER = "wayback_observatory"

# Transport chatter that would otherwise log every upstream archive request.
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Request ID set by the HTTP middleware and read by :func:`_inject_request_id`."""


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


def _add_component(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Derive ``component`` from a ``wayback_observatory.*`` logger name."""
    name = event_dict.get("logger") or ""
    prefix = PACKAGE_LOGGER + "."
    if name.startswith(prefix) and "component" not in event_dict:
        event_dict["component"] = name[len(prefix):]
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _inject_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_component,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib and structlog records through one ``stderr`` handler.

    ``DEBUG`` renders with structlog's console renderer; every other level
    renders newline-delimited JSON and quietens :data:`QUIET_LOGGERS`.
    Repeated calls replace the previously installed handler.

    Args:
        log_level: Level name, case-insensitive.  Unknown names mean ``INFO``.
    """
    level_name = log_level.upper()
    level = getattr(logging, level_name, logging.INFO)
    console = level_name == "DEBUG"
    shared = _shared_processors()

    renderer: Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if console
        else structlog.processors.JSONRenderer()
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if console else logging.WARNING)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
